"""
SQLAlchemy ORM models for AMC measure persistence.

The clinical tables mirror the EHR columns the object collector and the
built-in rules query. Only those columns are modelled.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone as dt_timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, JSON
from sqlalchemy.orm import DeclarativeBase, relationship

def _uuid():
    return uuid.uuid4().hex

def utcnow():
    return datetime.now(dt_timezone.utc)

class Base(DeclarativeBase):
    pass


# ── Clinical tables ─────────────────────────────────────────────────────


class PatientData(Base):
    __tablename__ = "patient_data"

    pid = Column(Integer, primary_key=True)
    fname = Column(String(255), nullable=True)
    lname = Column(String(255), nullable=True)
    dob = Column(Date, nullable=True)
    sex = Column(String(255), nullable=True)
    language = Column(String(255), nullable=True)
    race = Column(String(255), nullable=True)
    ethnicity = Column(String(255), nullable=True)


class PostcalendarCategory(Base):
    __tablename__ = "openemr_postcalendar_categories"

    pc_catid = Column(Integer, primary_key=True)
    pc_catname = Column(String(100), nullable=True)


class EncCategoryMap(Base):
    __tablename__ = "enc_category_map"

    rule_enc_id = Column(String(31), primary_key=True)
    main_cat_id = Column(Integer, primary_key=True)


class FormEncounter(Base):
    __tablename__ = "form_encounter"

    id = Column(Integer, primary_key=True, autoincrement=True)
    encounter = Column(Integer, nullable=False, index=True)
    pid = Column(Integer, nullable=False, index=True)
    date = Column(DateTime, nullable=True)
    pc_catid = Column(Integer, nullable=True)
    reason = Column(Text, nullable=True)


class AmcMiscData(Base):
    __tablename__ = "amc_misc_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amc_id = Column(String(31), nullable=False)
    pid = Column(Integer, nullable=False, index=True)
    map_category = Column(String(255), nullable=False)
    map_id = Column(Integer, nullable=False)
    date_created = Column(DateTime, nullable=True)
    date_completed = Column(DateTime, nullable=True)
    soc_provided = Column(DateTime, nullable=True)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(DateTime, nullable=True)
    title = Column(String(255), nullable=False, default="")
    pid = Column(Integer, nullable=True, index=True)


class LbtData(Base):
    __tablename__ = "lbt_data"

    form_id = Column(Integer, ForeignKey("transactions.id"), primary_key=True)
    field_id = Column(String(31), primary_key=True)
    field_value = Column(Text, nullable=True)


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, nullable=True, index=True)
    date_added = Column(DateTime, nullable=True)
    drug = Column(String(150), nullable=True)
    erx_source = Column(Integer, nullable=False, default=0)
    erx_uploaded = Column(Integer, nullable=False, default=0)


class ProcedureProvider(Base):
    __tablename__ = "procedure_providers"

    ppid = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    lab_director = Column(Integer, nullable=True)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=True)


class ProcedureOrder(Base):
    __tablename__ = "procedure_order"

    procedure_order_id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, nullable=False, index=True)
    lab_id = Column(Integer, nullable=True)
    date_ordered = Column(DateTime, nullable=True)

    codes = relationship("ProcedureOrderCode", back_populates="order", cascade="all, delete-orphan")


class ProcedureOrderCode(Base):
    __tablename__ = "procedure_order_code"

    procedure_order_id = Column(Integer, ForeignKey("procedure_order.procedure_order_id"), primary_key=True)
    procedure_order_seq = Column(Integer, primary_key=True)
    procedure_code = Column(String(64), nullable=True)
    procedure_order_title = Column(String(255), nullable=True)
    procedure_source = Column(String(1), nullable=True)  # 1 = original order, 2 = added after order sent

    order = relationship("ProcedureOrder", back_populates="codes")


class ProcedureReport(Base):
    __tablename__ = "procedure_report"

    procedure_report_id = Column(Integer, primary_key=True, autoincrement=True)
    procedure_order_id = Column(Integer, ForeignKey("procedure_order.procedure_order_id"), nullable=True)
    date_collected = Column(DateTime, nullable=True)


class ProcedureResult(Base):
    __tablename__ = "procedure_result"

    procedure_result_id = Column(Integer, primary_key=True, autoincrement=True)
    procedure_report_id = Column(Integer, ForeignKey("procedure_report.procedure_report_id"), nullable=False)
    result = Column(String(255), nullable=True)


# ── Engine tables ───────────────────────────────────────────────────────


class AmcReportRun(Base):
    __tablename__ = "amc_report_runs"

    id = Column(String(120), primary_key=True, default=_uuid)
    rule_id = Column(String(64), nullable=False)
    status = Column(String(20), default="pending")  # pending | running | success | failed
    created_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    config_json = Column(JSON, nullable=True)
    result_json = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    processing_seconds = Column(Float, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    worker_id = Column(String(100), nullable=True)
    heartbeat_at = Column(DateTime, nullable=True)

    items = relationship("ReportItemized", back_populates="run", cascade="all, delete-orphan")


class ReportItemized(Base):
    __tablename__ = "report_itemized"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(120), ForeignKey("amc_report_runs.id"), nullable=True)
    itemized_test_id = Column(Integer, nullable=False, index=True)
    rule_id = Column(String(64), nullable=False)
    date_begin = Column(String(30), nullable=True)
    date_end = Column(String(30), nullable=True)
    pass_flag = Column(Integer, nullable=False)  # 0 = fail, 1 = pass
    pid = Column(Integer, nullable=False)
    object_type = Column(String(40), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    run = relationship("AmcReportRun", back_populates="items")

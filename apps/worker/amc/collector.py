"""
Object collection for AMC rules that count something other than patients.

Each object type maps to one parameterized query scoped to a patient id and
the measurement range. Rows come back in the store's natural order.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional, Union

from packages.db.query import QueryExecutor
from packages.shared.errors import ConfigurationError
from packages.shared.models import ObjectType, Subject

logger = logging.getLogger(__name__)

CandidateObject = dict[str, Any]

_IMAGING_ORDER_JOIN = (
    "FROM procedure_order pr "
    "INNER JOIN procedure_order_code prc ON pr.procedure_order_id = prc.procedure_order_id "
)

_LAB_PROVIDER_JOIN = (
    "LEFT JOIN procedure_providers pp ON pr.lab_id = pp.ppid "
    "LEFT JOIN users u ON u.id = pp.lab_director "
)

OBJECT_QUERIES: dict[ObjectType, str] = {
    ObjectType.TRANSITIONS_IN: (
        "SELECT amc_misc_data.map_id AS encounter, amc_misc_data.date_completed AS completed, "
        "form_encounter.date AS date "
        "FROM amc_misc_data "
        "INNER JOIN form_encounter ON amc_misc_data.map_id = form_encounter.encounter "
        "INNER JOIN openemr_postcalendar_categories opc ON opc.pc_catid = form_encounter.pc_catid "
        "WHERE amc_misc_data.map_category = 'form_encounter' "
        "AND amc_misc_data.pid = :pid AND form_encounter.pid = :pid "
        "AND amc_misc_data.amc_id = 'med_reconc_amc' "
        "AND form_encounter.date >= :begin AND form_encounter.date <= :end "
        "AND ((opc.pc_catname = 'New Patient') "
        "OR (opc.pc_catname = 'Established Patient' AND amc_misc_data.soc_provided IS NOT NULL))"
    ),
    ObjectType.TRANSITIONS_OUT: (
        "SELECT transactions.id AS id "
        "FROM transactions "
        "INNER JOIN lbt_data ON lbt_data.form_id = transactions.id "
        "WHERE transactions.title = 'LBTref' "
        "AND transactions.pid = :pid "
        "AND lbt_data.field_id = 'refer_date' "
        "AND lbt_data.field_value >= :begin AND lbt_data.field_value <= :end"
    ),
    ObjectType.ENCOUNTERS: (
        "SELECT * "
        "FROM form_encounter "
        "WHERE pid = :pid "
        "AND date >= :begin AND date <= :end"
    ),
    ObjectType.ENCOUNTERS_OFFICE_VISIT: (
        "SELECT form_encounter.*, enc_category_map.rule_enc_id "
        "FROM form_encounter "
        "LEFT JOIN enc_category_map ON form_encounter.pc_catid = enc_category_map.main_cat_id "
        "WHERE enc_category_map.rule_enc_id = 'enc_off_vis' "
        "AND form_encounter.pid = :pid "
        "AND form_encounter.date >= :begin AND form_encounter.date <= :end"
    ),
    ObjectType.CPOE_MEDICATIONS: (
        "SELECT drug "
        "FROM prescriptions "
        "WHERE patient_id = :pid "
        "AND date_added >= :begin AND date_added <= :end"
    ),
    ObjectType.PRESCRIPTIONS: (
        "SELECT * "
        "FROM prescriptions "
        "WHERE patient_id = :pid "
        "AND date_added >= :begin AND date_added <= :end"
    ),
    ObjectType.LABS: (
        "SELECT procedure_result.result "
        "FROM procedure_order "
        "INNER JOIN procedure_report ON procedure_order.procedure_order_id = procedure_report.procedure_order_id "
        "INNER JOIN procedure_result ON procedure_report.procedure_report_id = procedure_result.procedure_report_id "
        "WHERE procedure_order.patient_id = :pid "
        "AND procedure_report.date_collected >= :begin AND procedure_report.date_collected <= :end"
    ),
    ObjectType.IMAGE_ORDERS: (
        "SELECT pr.* "
        + _IMAGING_ORDER_JOIN +
        "WHERE pr.patient_id = :pid "
        "AND prc.procedure_order_title LIKE '%imaging%' "
        "AND (pr.date_ordered BETWEEN :begin AND :end)"
    ),
    ObjectType.LAB_RADIOLOGY: (
        "SELECT pr.* "
        + _IMAGING_ORDER_JOIN + _LAB_PROVIDER_JOIN +
        "WHERE pr.patient_id = :pid "
        "AND prc.procedure_order_title LIKE '%imaging%' "
        "AND (pr.date_ordered BETWEEN :begin AND :end)"
    ),
    ObjectType.CPOE_LAB_ORDERS: (
        "SELECT pr.* "
        + _IMAGING_ORDER_JOIN + _LAB_PROVIDER_JOIN +
        "WHERE pr.patient_id = :pid "
        "AND prc.procedure_order_title LIKE '%laboratory_test%' "
        "AND (pr.date_ordered BETWEEN :begin AND :end)"
    ),
    # TODO: cpoe_stat reuses erx_source until prescriptions carries a real CPOE flag column.
    ObjectType.MED_ORDERS: (
        "SELECT drug, erx_source AS cpoe_stat "
        "FROM prescriptions "
        "WHERE patient_id = :pid "
        "AND date_added BETWEEN :begin AND :end"
    ),
    ObjectType.LAB_ORDERS: (
        "SELECT prc.* "
        + _IMAGING_ORDER_JOIN +
        "WHERE pr.patient_id = :pid "
        "AND (prc.procedure_order_title LIKE '%Laboratory%' "
        "OR (prc.procedure_source = '2' AND prc.procedure_order_title IS NULL)) "
        "AND (pr.date_ordered BETWEEN :begin AND :end)"
    ),
}

_DATETIME_BIND = "%Y-%m-%d %H:%M:%S.%f"

LBT_FIELDS_SQL = (
    "SELECT form_id, field_id, field_value "
    "FROM lbt_data "
    "WHERE form_id IN :form_ids"
)


def resolve_object_type(value: Union[ObjectType, str, None]) -> ObjectType:
    """Map a rule's object tag to an `ObjectType`; empty means patients."""
    if value is None or value == "":
        return ObjectType.PATIENTS
    if isinstance(value, ObjectType):
        return value
    try:
        return ObjectType(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown AMC object type: {value!r}",
            details={"object_type": value, "supported": [t.value for t in ObjectType]},
        ) from None


def bind_range(begin: Union[date, datetime, None], end: Union[date, datetime]) -> tuple[Optional[str], str]:
    """
    Bind values for a measurement range.

    A plain end date covers the whole day, down to the last microsecond, so
    timestamps stored on the end date fall inside the range. Datetime bounds
    carry microseconds so they compare equal to stored values at the bound.
    """
    begin_value: Optional[str] = None
    if isinstance(begin, datetime):
        begin_value = begin.strftime(_DATETIME_BIND)
    elif isinstance(begin, date):
        begin_value = begin.isoformat()

    if isinstance(end, datetime):
        end_value = end.strftime(_DATETIME_BIND)
    else:
        end_value = f"{end.isoformat()} 23:59:59.999999"
    return begin_value, end_value


def collect_objects(
    executor: QueryExecutor,
    patient: Subject,
    object_type: Union[ObjectType, str],
    begin: Union[date, datetime, None],
    end: Union[date, datetime],
) -> list[CandidateObject]:
    """Return the objects of `object_type` recorded for `patient` inside the range."""
    object_type = resolve_object_type(object_type)
    sql = OBJECT_QUERIES.get(object_type)
    if sql is None:
        raise ConfigurationError(
            f"No object query defined for {object_type.value!r}",
            details={"object_type": object_type.value},
        )

    begin_value, end_value = bind_range(begin, end)
    rows = executor.fetch_all(sql, {"pid": patient.id, "begin": begin_value, "end": end_value})

    if object_type is ObjectType.TRANSITIONS_OUT and rows:
        _merge_lbt_fields(executor, rows)

    logger.debug(f"Collected {len(rows)} {object_type.value} objects for pid {patient.id}")
    return rows


def _merge_lbt_fields(executor: QueryExecutor, rows: list[CandidateObject]) -> None:
    """Merge each referral's lbt_data fields into its row (one query per patient)."""
    form_ids = list(dict.fromkeys(row["id"] for row in rows))
    fields: dict[Any, list[tuple[str, Any]]] = {}
    for frow in executor.fetch_all(LBT_FIELDS_SQL, {"form_ids": form_ids}, expanding=("form_ids",)):
        fields.setdefault(frow["form_id"], []).append((frow["field_id"], frow["field_value"]))

    for row in rows:
        for field_id, field_value in fields.get(row["id"], []):
            row[field_id] = field_value

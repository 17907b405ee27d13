from enum import Enum


class ObjectType(str, Enum):
    """What an AMC rule counts."""
    PATIENTS = "patients"
    TRANSITIONS_IN = "transitions-in"
    TRANSITIONS_OUT = "transitions-out"
    ENCOUNTERS = "encounters"
    ENCOUNTERS_OFFICE_VISIT = "encounters_office_visit"
    CPOE_MEDICATIONS = "cpoe_medications"
    PRESCRIPTIONS = "prescriptions"
    LABS = "labs"
    IMAGE_ORDERS = "image_orders"
    LAB_RADIOLOGY = "lab_radiology"
    CPOE_LAB_ORDERS = "cpoe_lab_orders"
    MED_ORDERS = "med_orders"
    LAB_ORDERS = "lab_orders"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

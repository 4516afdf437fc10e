"""Declarative base shared by all models"""
import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_id() -> str:
    """Primary key default for string ids"""
    return str(uuid.uuid4())

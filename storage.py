# storage.py
import os
import json
import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional, Dict

import pandas as pd
from sqlalchemy import (
    create_engine, MetaData, Table, Column,
    Integer, String, DateTime, Text, func
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import select, insert, update, delete
from sqlalchemy.pool import NullPool

from config import APP, LOW_RISK, MEDIUM_RISK, HIGH_RISK
from predict import risk_level_for, round_half_up

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """A database operation failed."""


def _get_db_url() -> str:
    """DATABASE_URL from the environment, then Streamlit secrets, else local SQLite."""
    url = os.getenv("DATABASE_URL", "").strip()
    if url:
        return url
    try:
        import streamlit as st
        url = str(st.secrets.get("DATABASE_URL", "")).strip()
    except Exception as exc:
        # st.secrets raises when no secrets.toml exists
        logger.debug("No Streamlit secrets available: %s", exc)
    return url or APP["default_db_url"]

_engine = None

def get_engine():
    global _engine
    if _engine is None:
        db_url = _get_db_url()
        if db_url.startswith("sqlite"):
            _engine = create_engine(db_url, connect_args={"check_same_thread": False})
        else:
            _engine = create_engine(db_url, pool_pre_ping=True, poolclass=NullPool)
        logger.info("Database engine created for %s", _engine.url.render_as_string(hide_password=True))
    return _engine

def reset_engine() -> None:
    """Drop the cached engine so the next call re-reads DATABASE_URL."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None

metadata = MetaData()

patients = Table(
    "patients", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", String(80), nullable=False, unique=True),
    Column("name", String(200), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

assessments = Table(
    "assessments", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", String(80), nullable=False),
    Column("patient_ref", Integer, nullable=True),
    Column("timestamp", DateTime, nullable=False),
    Column("risk_score", Integer, nullable=False),
    Column("risk_level", String(30), nullable=False),
    Column("vitals_json", Text, nullable=True),
    Column("risk_factors_json", Text, nullable=True),
    Column("created_at", DateTime, nullable=False),
)

def init_db() -> None:
    metadata.create_all(get_engine())

def _loads(text: Optional[str], default):
    try:
        return json.loads(text) if text else default
    except ValueError:
        logger.warning("Unreadable JSON column value: %r", text)
        return default

def _assessment_row(row) -> Dict:
    d = dict(row._mapping)
    d["vitals"] = _loads(d.pop("vitals_json", None), {})
    d["risk_factors"] = _loads(d.pop("risk_factors_json", None), [])
    return d

def _upsert_patient(conn, patient_id: str, name: Optional[str]) -> int:
    now = datetime.now()
    row = conn.execute(
        select(patients.c.id, patients.c.name).where(patients.c.patient_id == patient_id)
    ).fetchone()

    if row:
        conn.execute(
            update(patients).where(patients.c.id == row.id).values(
                name=name or row.name,
                updated_at=now,
            )
        )
        return row.id

    result = conn.execute(insert(patients).values(
        patient_id=patient_id,
        name=name or "Unknown",
        created_at=now,
        updated_at=now,
    ))
    return result.inserted_primary_key[0]

def save_patient(patient_id: str, name: Optional[str] = None) -> int:
    """Creates or updates a patient; returns the row id."""
    if not patient_id:
        raise ValueError("Patient ID is required")
    try:
        with get_engine().begin() as conn:
            return _upsert_patient(conn, patient_id, name)
    except SQLAlchemyError as exc:
        logger.error("Error saving patient %s: %s", patient_id, exc)
        raise StorageError(f"Failed to save patient (ID: {patient_id}): {exc}") from exc

def save_assessment(
    patient_id: str,
    name: Optional[str],
    risk_score: int,
    risk_level: str,
    vitals: Dict,
    risk_factors: Optional[List[Dict]] = None,
    timestamp: Optional[datetime] = None,
) -> int:
    """Stores an assessment (and its patient); returns the assessment id."""
    if not patient_id:
        raise ValueError("Patient ID is required")
    try:
        with get_engine().begin() as conn:
            patient_ref = _upsert_patient(conn, patient_id, name)
            result = conn.execute(insert(assessments).values(
                patient_id=patient_id,
                patient_ref=patient_ref,
                timestamp=timestamp or datetime.now(),
                risk_score=int(risk_score or 0),
                risk_level=risk_level or "unknown",
                vitals_json=json.dumps(vitals or {}),
                risk_factors_json=json.dumps(risk_factors or []),
                created_at=datetime.now(),
            ))
            assessment_id = result.inserted_primary_key[0]
    except SQLAlchemyError as exc:
        logger.error("Error saving assessment for %s: %s", patient_id, exc)
        raise StorageError(f"Failed to save assessment for patient (ID: {patient_id}): {exc}") from exc

    logger.info("Assessment %s saved for patient %s", assessment_id, patient_id)
    return assessment_id

def fetch_patients(limit: int = 100) -> List[Dict]:
    try:
        with get_engine().begin() as conn:
            rows = conn.execute(
                select(patients).order_by(patients.c.updated_at.desc()).limit(limit)
            ).fetchall()
    except SQLAlchemyError as exc:
        logger.error("Error fetching patients: %s", exc)
        raise StorageError(f"Failed to fetch patients: {exc}") from exc
    return [dict(r._mapping) for r in rows]

def fetch_patient_assessments(patient_id: str) -> List[Dict]:
    if not patient_id:
        raise ValueError("Patient ID is required to fetch assessments")
    try:
        with get_engine().begin() as conn:
            rows = conn.execute(
                select(assessments)
                .where(assessments.c.patient_id == patient_id)
                .order_by(assessments.c.timestamp.desc())
            ).fetchall()
    except SQLAlchemyError as exc:
        logger.error("Error fetching assessments for %s: %s", patient_id, exc)
        raise StorageError(f"Failed to fetch assessments for patient (ID: {patient_id}): {exc}") from exc
    return [_assessment_row(r) for r in rows]

def fetch_latest_assessments(limit: int = 10) -> List[Dict]:
    """Newest assessments first, each with the patient's name."""
    try:
        with get_engine().begin() as conn:
            rows = conn.execute(
                select(assessments, patients.c.name)
                .select_from(assessments.outerjoin(patients, assessments.c.patient_ref == patients.c.id))
                .order_by(assessments.c.timestamp.desc(), assessments.c.id.desc())
                .limit(limit)
            ).fetchall()
    except SQLAlchemyError as exc:
        logger.error("Error fetching latest assessments: %s", exc)
        raise StorageError(f"Failed to fetch latest assessments: {exc}") from exc

    out = []
    for r in rows:
        d = _assessment_row(r)
        d["name"] = d.get("name") or "Unknown"
        out.append(d)
    return out

def delete_assessment(assessment_id: int) -> bool:
    """Returns False when no such assessment exists."""
    try:
        with get_engine().begin() as conn:
            result = conn.execute(delete(assessments).where(assessments.c.id == assessment_id))
    except SQLAlchemyError as exc:
        logger.error("Error deleting assessment %s: %s", assessment_id, exc)
        raise StorageError(f"Failed to delete assessment {assessment_id}: {exc}") from exc

    logger.info("Assessment %s deleted (%d row)", assessment_id, result.rowcount)
    return result.rowcount > 0

def _level_counts(scores) -> Dict[str, int]:
    counts = Counter(risk_level_for(s) for s in scores)
    return {lvl: counts[lvl] for lvl in (LOW_RISK, MEDIUM_RISK, HIGH_RISK)}

def _pct_change(now: int, before: int) -> int:
    return round_half_up((now - before) / before * 100) if before > 0 else 0

def _empty_statistics() -> Dict:
    return {
        "total": 0, "lowRisk": 0, "mediumRisk": 0, "highRisk": 0,
        "trend": {"total": 0, "lowRisk": 0, "mediumRisk": 0, "highRisk": 0},
    }

def get_statistics(now: Optional[datetime] = None) -> Dict:
    """
    Patient total, per-level assessment counts and the percentage change
    of all assessments against those from the last month.
    """
    now = now or datetime.now()
    last_month = (pd.Timestamp(now) - pd.DateOffset(months=1)).to_pydatetime()

    try:
        with get_engine().begin() as conn:
            total = conn.execute(select(func.count()).select_from(patients)).scalar() or 0
            rows = conn.execute(
                select(assessments.c.timestamp, assessments.c.risk_score)
            ).fetchall()
    except SQLAlchemyError as exc:
        logger.error("Error getting statistics: %s", exc)
        return _empty_statistics()

    all_counts = _level_counts([r.risk_score for r in rows])
    recent = [r.risk_score for r in rows if r.timestamp >= last_month]
    recent_counts = _level_counts(recent)

    return {
        "total": int(total),
        "lowRisk": all_counts[LOW_RISK],
        "mediumRisk": all_counts[MEDIUM_RISK],
        "highRisk": all_counts[HIGH_RISK],
        "trend": {
            "total": _pct_change(len(rows), len(recent)),
            "lowRisk": _pct_change(all_counts[LOW_RISK], recent_counts[LOW_RISK]),
            "mediumRisk": _pct_change(all_counts[MEDIUM_RISK], recent_counts[MEDIUM_RISK]),
            "highRisk": _pct_change(all_counts[HIGH_RISK], recent_counts[HIGH_RISK]),
        },
    }

# analytics.py
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from config import LOW_RISK, MEDIUM_RISK, HIGH_RISK, LEVELS
from predict import round_half_up

RECORD_COLUMNS = ["assessment_id", "patient_id", "name", "timestamp", "risk_score", "risk_level"]
VITAL_COLUMNS = ["heart_rate", "resp_rate", "oxygen_sat", "body_temp", "systolic_bp", "diastolic_bp", "bmi"]

TIME_RANGES = {
    "week": pd.DateOffset(days=7),
    "month": pd.DateOffset(months=1),
    "quarter": pd.DateOffset(months=3),
}


def records_frame(rows: List[Dict]) -> pd.DataFrame:
    """Flattens storage rows (with nested vitals) into one row per assessment."""
    data = []
    for r in rows:
        vitals = r.get("vitals") or {}
        item = {
            "assessment_id": r.get("id"),
            "patient_id": r.get("patient_id"),
            "name": r.get("name") or "Unknown",
            "timestamp": r.get("timestamp"),
            "risk_score": int(r.get("risk_score") or 0),
            "risk_level": r.get("risk_level"),
        }
        for col in VITAL_COLUMNS:
            item[col] = vitals.get(col)
        item["vitals"] = dict(vitals)
        data.append(item)

    df = pd.DataFrame(data, columns=RECORD_COLUMNS + VITAL_COLUMNS + ["vitals"])
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    return df


def report_payload(row) -> Dict:
    """Input for predict.generate_report from one records_frame row."""
    return {
        "id": row["patient_id"],
        "name": row["name"],
        "riskScore": int(row["risk_score"]),
        "riskLevel": row["risk_level"],
        "vitals": row["vitals"] or {},
    }


def search_records(df: pd.DataFrame, term: str) -> pd.DataFrame:
    term = (term or "").strip().lower()
    if not term:
        return df
    mask = (
        df["name"].fillna("").str.lower().str.contains(term, regex=False)
        | df["patient_id"].fillna("").str.lower().str.contains(term, regex=False)
    )
    return df[mask]


def sort_records(df: pd.DataFrame, key: str = "timestamp", descending: bool = True) -> pd.DataFrame:
    if key not in df.columns:
        raise ValueError(f"Unknown sort column: {key}")
    return df.sort_values(key, ascending=not descending, kind="stable")


def filter_by_time_range(df: pd.DataFrame, time_range: str, now: Optional[datetime] = None) -> pd.DataFrame:
    """time_range: "week" | "month" | "quarter" | "all"."""
    if time_range == "all":
        return df
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unknown time range: {time_range}")
    cutoff = pd.Timestamp(now or datetime.now()) - TIME_RANGES[time_range]
    return df[df["timestamp"] >= cutoff]


def filter_by_patient(df: pd.DataFrame, patient_id: str) -> pd.DataFrame:
    if not patient_id or patient_id == "all":
        return df
    return df[df["patient_id"] == patient_id]


def risk_distribution(df: pd.DataFrame) -> Dict[str, int]:
    scores = df["risk_score"]
    return {
        LOW_RISK: int((scores < LEVELS["medium"]).sum()),
        MEDIUM_RISK: int(((scores >= LEVELS["medium"]) & (scores < LEVELS["high"])).sum()),
        HIGH_RISK: int((scores >= LEVELS["high"]).sum()),
    }


def average_risk_score(df: pd.DataFrame) -> int:
    if df.empty:
        return 0
    return round_half_up(df["risk_score"].mean())


def high_risk_percentage(df: pd.DataFrame) -> int:
    if df.empty:
        return 0
    return round_half_up((df["risk_score"] >= LEVELS["high"]).mean() * 100)


def average_vitals(df: pd.DataFrame) -> Dict[str, int]:
    out = {}
    for col in ("heart_rate", "resp_rate", "oxygen_sat"):
        values = pd.to_numeric(df[col], errors="coerce").dropna()
        out[col] = round_half_up(values.mean()) if not values.empty else 0
    return out


def vitals_trend(df: pd.DataFrame) -> pd.DataFrame:
    """Chronological risk score + vitals, indexed by timestamp."""
    cols = ["risk_score", "heart_rate", "resp_rate", "oxygen_sat"]
    trend = df.sort_values("timestamp", kind="stable")[["timestamp"] + cols]
    return trend.set_index("timestamp")

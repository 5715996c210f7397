# predict.py
import math
import random
import time
from datetime import datetime
from typing import Dict, List, Optional

from config import (
    ACTION_SCORES,
    ACTIONS,
    APP,
    HIGH_RISK,
    LEVELS,
    LOW_RISK,
    MAX_ACTIONS,
    MAX_SCORE,
    MEDIUM_RISK,
    NORMAL_RANGES,
    RECOMMENDATIONS,
    RISK,
    WEIGHTS,
)


def _above(value: Optional[float], limit: float) -> bool:
    return value is not None and value > limit

def _below(value: Optional[float], limit: float) -> bool:
    return value is not None and value < limit

def _within(value: Optional[float], band) -> bool:
    low, high = band
    return value is not None and low <= value <= high

def round_half_up(value: float) -> int:
    """Rounds .5 up (towards +inf), unlike the built-in round."""
    return int(math.floor(value + 0.5))

def _fmt(value) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def calculate_derived_measurements(vitals: Dict) -> Dict:
    """
    Returns a copy of `vitals` with bmi, pulse_pressure and map recomputed.
    A derived field is left as-is when its base values are missing.
    """
    updated = dict(vitals)

    weight = vitals.get("weight")
    height = vitals.get("height")
    # height <= 0 skips derivation
    if weight and height and height > 0:
        updated["bmi"] = round(weight / (height * height), 1)

    sys_bp = vitals.get("systolic_bp")
    dia_bp = vitals.get("diastolic_bp")
    if sys_bp and dia_bp:
        updated["pulse_pressure"] = sys_bp - dia_bp
        updated["map"] = round((2 * dia_bp + sys_bp) / 3, 1)

    return updated


def risk_level_for(score: float) -> str:
    if score < LEVELS["medium"]:
        return LOW_RISK
    if score < LEVELS["high"]:
        return MEDIUM_RISK
    return HIGH_RISK


def vitals_display(vitals: Dict) -> List[Dict]:
    """Six display rows (value text + normal flag) for a raw vitals record."""
    hr = vitals.get("heart_rate")
    rr = vitals.get("resp_rate")
    temp = vitals.get("body_temp")
    o2 = vitals.get("oxygen_sat")
    sys_bp = vitals.get("systolic_bp")
    dia_bp = vitals.get("diastolic_bp")
    bmi = vitals.get("bmi")

    return [
        {"name": "Heart Rate", "value": f"{_fmt(hr)} BPM",
         "normal": _within(hr, NORMAL_RANGES["heart_rate"])},
        {"name": "Respiratory Rate", "value": f"{_fmt(rr)} breaths/min",
         "normal": _within(rr, NORMAL_RANGES["resp_rate"])},
        {"name": "Body Temperature", "value": f"{_fmt(temp)}°C",
         "normal": _within(temp, NORMAL_RANGES["body_temp"])},
        {"name": "Oxygen Saturation", "value": f"{_fmt(o2)}%",
         "normal": _within(o2, NORMAL_RANGES["oxygen_sat"])},
        {"name": "Blood Pressure", "value": f"{_fmt(sys_bp)}/{_fmt(dia_bp)} mmHg",
         "normal": _within(sys_bp, NORMAL_RANGES["systolic_bp"]) and _within(dia_bp, NORMAL_RANGES["diastolic_bp"])},
        {"name": "BMI", "value": f"{bmi:.1f}" if bmi is not None else "N/A",
         "normal": _within(bmi, NORMAL_RANGES["bmi"])},
    ]


def calculate_risk_score(vitals: Dict) -> Dict:
    """
    Scores a vitals record (run calculate_derived_measurements first).

    Returns a dict with riskScore (0-100), riskLevel, recommendation,
    riskFactors (present factors only), vitals (display rows) and
    suggestedActions.
    """
    score = 0
    factors: List[Dict] = []

    def add(name: str, value: bool, points: int = 0) -> None:
        nonlocal score
        if value:
            score += points
        factors.append({"name": name, "value": value})

    age = vitals.get("age")
    sys_bp = vitals.get("systolic_bp")
    dia_bp = vitals.get("diastolic_bp")
    hr = vitals.get("heart_rate")
    rr = vitals.get("resp_rate")
    o2 = vitals.get("oxygen_sat")
    temp = vitals.get("body_temp")
    bmi = vitals.get("bmi")
    hrv = vitals.get("hrv")

    # One entry per category; the "not present" label does not always match
    # the labels of the branches that fire.
    if _above(age, RISK["age_advanced"]):
        add("Advanced Age", True, WEIGHTS["advanced_age"])
    elif _above(age, RISK["age_increased"]):
        add("Increased Age", True, WEIGHTS["increased_age"])
    else:
        add("Advanced Age", False)

    add("High Blood Pressure",
        _above(sys_bp, RISK["bp_high_sys"]) or _above(dia_bp, RISK["bp_high_dia"]),
        WEIGHTS["high_bp"])
    add("Low Blood Pressure",
        _below(sys_bp, RISK["bp_low_sys"]) or _below(dia_bp, RISK["bp_low_dia"]),
        WEIGHTS["low_bp"])

    if _above(hr, RISK["hr_high"]):
        add("Elevated Heart Rate", True, WEIGHTS["elevated_hr"])
    elif _below(hr, RISK["hr_low"]):
        add("Low Heart Rate", True, WEIGHTS["low_hr"])
    else:
        add("Abnormal Heart Rate", False)

    if _above(rr, RISK["rr_high"]):
        add("High Respiratory Rate", True, WEIGHTS["high_rr"])
    elif _below(rr, RISK["rr_low"]):
        add("Low Respiratory Rate", True, WEIGHTS["low_rr"])
    else:
        add("Abnormal Respiratory Rate", False)

    if _below(o2, RISK["o2_low"]):
        add("Low Oxygen Saturation", True, WEIGHTS["low_o2"])
    elif _below(o2, RISK["o2_borderline"]):
        add("Borderline Oxygen Saturation", True, WEIGHTS["borderline_o2"])
    else:
        add("Low Oxygen Saturation", False)

    if _above(temp, RISK["temp_fever"]):
        add("Fever", True, WEIGHTS["fever"])
    elif _below(temp, RISK["temp_hypothermia"]):
        add("Hypothermia", True, WEIGHTS["hypothermia"])
    else:
        add("Abnormal Temperature", False)

    if _above(bmi, RISK["bmi_obese"]):
        add("Obesity", True, WEIGHTS["obesity"])
    elif _below(bmi, RISK["bmi_underweight"]):
        add("Underweight", True, WEIGHTS["underweight"])
    else:
        add("Abnormal BMI", False)

    add("Low Heart Rate Variability", _below(hrv, RISK["hrv_low"]), WEIGHTS["low_hrv"])

    score = int(max(0, min(score, MAX_SCORE)))
    level = risk_level_for(score)

    return {
        "riskScore": score,
        "riskLevel": level,
        "recommendation": RECOMMENDATIONS[level],
        "riskFactors": [f for f in factors if f["value"]],
        "vitals": vitals_display(vitals),
        "suggestedActions": generate_suggested_actions(score, factors),
    }


def generate_suggested_actions(score: float, factors: List[Dict]) -> List[Dict]:
    """Ordered follow-up actions, most important first, at most MAX_ACTIONS."""
    present = [f["name"] for f in factors if f["value"]]
    keys = ["monitor"]

    for key in ("follow_up", "medication", "admission"):
        if score >= ACTION_SCORES[key]:
            keys.append(key)

    if any("Blood Pressure" in name for name in present):
        keys.append("bp")
    if any("Oxygen" in name for name in present):
        keys.append("respiratory")
    if any(name in ("Obesity", "Underweight") for name in present):
        keys.append("nutrition")

    return [dict(ACTIONS[k]) for k in keys[:MAX_ACTIONS]]


def generate_patient_id(now: Optional[float] = None, rng: Optional[random.Random] = None) -> str:
    """PAT-<last 6 digits of epoch millis>-<3 random digits>."""
    millis = int((time.time() if now is None else now) * 1000)
    rnd = (rng or random).randint(0, 999)
    return f"PAT-{str(millis)[-6:]}-{rnd:03d}"


def report_date(when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return f"{when.strftime('%B')} {when.day}, {when.year}"


def report_filename(patient_id: str, when: Optional[datetime] = None) -> str:
    return f"risk-assessment-{patient_id}-{report_date(when)}.txt"


def generate_report(assessment: Dict, when: Optional[datetime] = None) -> str:
    """
    Plain-text report for an assessment.

    `assessment` carries id, name, riskScore, riskLevel and the raw
    `vitals` record (not the display rows).
    """
    vitals = assessment.get("vitals") or {}
    bmi = vitals.get("bmi")

    lines = [
        "Patient Risk Assessment Report",
        "----------------------------",
        f"Date: {report_date(when)}",
        f"Patient: {assessment.get('name', '')}",
        f"Patient ID: {assessment.get('id', '')}",
        "",
        "RISK ASSESSMENT",
        "----------------------------",
        f"Risk Score: {assessment.get('riskScore', 0)}%",
        f"Risk Level: {assessment.get('riskLevel', '')}",
        "",
        "VITAL SIGNS",
        "----------------------------",
        f"Heart Rate: {_fmt(vitals.get('heart_rate'))} BPM",
        f"Respiratory Rate: {_fmt(vitals.get('resp_rate'))} breaths/min",
        f"Body Temperature: {_fmt(vitals.get('body_temp'))}°C",
        f"Oxygen Saturation: {_fmt(vitals.get('oxygen_sat'))}%",
        f"Blood Pressure: {_fmt(vitals.get('systolic_bp'))}/{_fmt(vitals.get('diastolic_bp'))} mmHg",
        f"BMI: {_fmt(bmi)}",
        "",
        APP["report_footer"],
    ]
    return "\n".join(lines) + "\n"

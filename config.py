# config.py
# Scoring thresholds + settings (clinical reviewers can tweak these easily)

RISK = {
    # Age
    "age_advanced": 65,
    "age_increased": 50,

    # Blood pressure (mmHg)
    "bp_high_sys": 140,
    "bp_high_dia": 90,
    "bp_low_sys": 90,
    "bp_low_dia": 60,

    # Heart rate (BPM)
    "hr_high": 100,
    "hr_low": 60,

    # Respiratory rate (breaths/min)
    "rr_high": 20,
    "rr_low": 12,

    # Oxygen saturation (%)
    "o2_low": 95,
    "o2_borderline": 98,

    # Body temperature (°C)
    "temp_fever": 38.0,
    "temp_hypothermia": 36.0,

    # BMI (kg/m²)
    "bmi_obese": 30,
    "bmi_underweight": 18.5,

    # Heart rate variability index
    "hrv_low": 0.05,
}

# Points added to the score when a rule fires
WEIGHTS = {
    "advanced_age": 20,
    "increased_age": 10,
    "high_bp": 15,
    "low_bp": 15,
    "elevated_hr": 15,
    "low_hr": 10,
    "high_rr": 10,
    "low_rr": 15,
    "low_o2": 20,
    "borderline_o2": 5,
    "fever": 15,
    "hypothermia": 15,
    "obesity": 10,
    "underweight": 10,
    "low_hrv": 10,
}

MAX_SCORE = 100

# Reference bands for the vitals display (inclusive)
NORMAL_RANGES = {
    "heart_rate": (60, 100),
    "resp_rate": (12, 20),
    "body_temp": (36.5, 37.5),
    "oxygen_sat": (95, 100),
    "systolic_bp": (90, 120),
    "diastolic_bp": (60, 80),
    "bmi": (18.5, 24.9),
}

LEVELS = {
    "medium": 25,
    "high": 75,
}

LOW_RISK = "Low Risk"
MEDIUM_RISK = "Medium Risk"
HIGH_RISK = "High Risk"

RECOMMENDATIONS = {
    LOW_RISK: "This patient is showing low risk. Regular follow-up recommended as per standard protocols.",
    MEDIUM_RISK: (
        "This patient is showing moderate risk. "
        "Consider scheduling a follow-up within the next week to monitor their condition."
    ),
    HIGH_RISK: (
        "This patient is showing signs of elevated risk. "
        "Consider immediate clinical review and potential interventions based on their vital signs."
    ),
}

ACTIONS = {
    "monitor": {"icon": "graph-up", "text": "Monitor vitals regularly"},
    "follow_up": {"icon": "clipboard-plus", "text": "Schedule follow-up"},
    "medication": {"icon": "journal-medical", "text": "Review medication"},
    "admission": {"icon": "hospital", "text": "Consider hospital admission"},
    "bp": {"icon": "heart-pulse", "text": "Blood pressure management"},
    "respiratory": {"icon": "lungs", "text": "Respiratory assessment"},
    "nutrition": {"icon": "universal-access", "text": "Nutrition consultation"},
}

# Score at which each escalation action is added
ACTION_SCORES = {
    "follow_up": 25,
    "medication": 50,
    "admission": 75,
}

MAX_ACTIONS = 5

# Initial values of the assessment form
FORM_DEFAULTS = {
    "heart_rate": 60,
    "resp_rate": 12,
    "body_temp": 36.0,
    "oxygen_sat": 95.0,
    "systolic_bp": 110,
    "diastolic_bp": 70,
    "age": 18,
    "gender": 0,
    "weight": 50.0,
    "height": 1.5,
    "hrv": 0.08,
}

GENDERS = {0: "Male", 1: "Female"}

APP = {
    "title": "HealthRisk Assessment Dashboard",
    "report_footer": "Generated by HealthRisk Assessment Tool",
    "disclaimer": (
        "Heuristic decision-support tool only. Scores are rule-based and not "
        "calibrated against clinical outcomes. Always apply clinical judgement."
    ),
    "default_db_url": "sqlite:///data.db",
}

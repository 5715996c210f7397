"""
Risk Engine Tests
=================
Scoring rules, derived measurements, suggested actions and the text
report of the vital-sign risk engine.

Run with: python -m pytest tests/test_predict.py -v
"""

from __future__ import annotations

import random
import sys
import unittest
from unittest import mock
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from predict import (
    calculate_derived_measurements,
    calculate_risk_score,
    generate_patient_id,
    generate_report,
    generate_suggested_actions,
    report_filename,
    risk_level_for,
    round_half_up,
    vitals_display,
)

import predict

HEALTHY = {
    "age": 30, "systolic_bp": 110, "diastolic_bp": 70, "heart_rate": 70,
    "resp_rate": 15, "oxygen_sat": 99, "body_temp": 37, "bmi": 22, "hrv": 0.1,
}


def _with(**overrides):
    vitals = dict(HEALTHY)
    vitals.update(overrides)
    return vitals


def _factor_names(result):
    return [f["name"] for f in result["riskFactors"]]


def _action_texts(result_or_actions):
    actions = result_or_actions
    if isinstance(result_or_actions, dict):
        actions = result_or_actions["suggestedActions"]
    return [a["text"] for a in actions]


class TestDerivedMeasurements(unittest.TestCase):
    """BMI, pulse pressure and mean arterial pressure."""

    def test_bmi_rounded_to_one_decimal(self):
        out = calculate_derived_measurements({"weight": 70, "height": 1.75})
        self.assertEqual(out["bmi"], 22.9)

    def test_pulse_pressure_and_map(self):
        out = calculate_derived_measurements({"systolic_bp": 120, "diastolic_bp": 80})
        self.assertEqual(out["pulse_pressure"], 40)
        self.assertEqual(out["map"], 93.3)

    def test_missing_inputs_leave_fields_untouched(self):
        out = calculate_derived_measurements({"weight": 70, "bmi": 25.0, "systolic_bp": 120, "map": 90.0})
        self.assertEqual(out["bmi"], 25.0)
        self.assertEqual(out["map"], 90.0)
        self.assertNotIn("pulse_pressure", out)

    def test_zero_or_negative_height_skips_bmi(self):
        self.assertNotIn("bmi", calculate_derived_measurements({"weight": 70, "height": 0}))
        self.assertNotIn("bmi", calculate_derived_measurements({"weight": 70, "height": -1.7}))

    def test_weight_only_needs_to_be_truthy(self):
        self.assertNotIn("bmi", calculate_derived_measurements({"weight": 0, "height": 1.75}))
        out = calculate_derived_measurements({"weight": -70, "height": 1.75})
        self.assertEqual(out["bmi"], -22.9)

    def test_input_not_mutated(self):
        vitals = {"weight": 70, "height": 1.75}
        calculate_derived_measurements(vitals)
        self.assertEqual(vitals, {"weight": 70, "height": 1.75})

    def test_idempotent(self):
        once = calculate_derived_measurements({"weight": 82, "height": 1.8, "systolic_bp": 133, "diastolic_bp": 87})
        twice = calculate_derived_measurements(once)
        self.assertEqual(once, twice)


class TestRiskScore(unittest.TestCase):
    """Rule table, clamping and level thresholds."""

    def test_everything_abnormal_clamps_to_100(self):
        result = calculate_risk_score({
            "age": 70, "systolic_bp": 150, "diastolic_bp": 95, "heart_rate": 110,
            "resp_rate": 22, "oxygen_sat": 92, "body_temp": 39, "bmi": 32, "hrv": 0.03,
        })
        self.assertEqual(result["riskScore"], 100)
        self.assertEqual(result["riskLevel"], "High Risk")
        for name in ["Advanced Age", "High Blood Pressure", "Elevated Heart Rate",
                     "High Respiratory Rate", "Low Oxygen Saturation", "Fever",
                     "Obesity", "Low Heart Rate Variability"]:
            self.assertIn(name, _factor_names(result))

    def test_healthy_patient(self):
        result = calculate_risk_score(HEALTHY)
        self.assertEqual(result["riskScore"], 0)
        self.assertEqual(result["riskLevel"], "Low Risk")
        self.assertEqual(result["riskFactors"], [])
        self.assertEqual(_action_texts(result), ["Monitor vitals regularly"])
        self.assertTrue(result["recommendation"].startswith("This patient is showing low risk."))

    def test_individual_rules(self):
        cases = [
            (_with(age=70), 20, "Advanced Age"),
            (_with(age=60), 10, "Increased Age"),
            (_with(systolic_bp=145), 15, "High Blood Pressure"),
            (_with(diastolic_bp=55), 15, "Low Blood Pressure"),
            (_with(heart_rate=101), 15, "Elevated Heart Rate"),
            (_with(heart_rate=55), 10, "Low Heart Rate"),
            (_with(resp_rate=21), 10, "High Respiratory Rate"),
            (_with(resp_rate=10), 15, "Low Respiratory Rate"),
            (_with(oxygen_sat=94), 20, "Low Oxygen Saturation"),
            (_with(oxygen_sat=96), 5, "Borderline Oxygen Saturation"),
            (_with(body_temp=38.5), 15, "Fever"),
            (_with(body_temp=35.5), 15, "Hypothermia"),
            (_with(bmi=31), 10, "Obesity"),
            (_with(bmi=17), 10, "Underweight"),
            (_with(hrv=0.04), 10, "Low Heart Rate Variability"),
        ]
        for vitals, points, name in cases:
            with self.subTest(name=name):
                result = calculate_risk_score(vitals)
                self.assertEqual(result["riskScore"], points)
                self.assertEqual(_factor_names(result), [name])

    def test_boundaries_do_not_fire(self):
        result = calculate_risk_score(_with(
            age=50, systolic_bp=140, diastolic_bp=90, heart_rate=100, resp_rate=20,
            oxygen_sat=98, body_temp=38.0, bmi=30, hrv=0.05,
        ))
        self.assertEqual(result["riskScore"], 0)

    def test_age_65_is_increased_not_advanced(self):
        self.assertEqual(_factor_names(calculate_risk_score(_with(age=65))), ["Increased Age"])

    def test_high_and_low_blood_pressure_together(self):
        result = calculate_risk_score(_with(systolic_bp=150, diastolic_bp=55))
        self.assertEqual(result["riskScore"], 30)
        self.assertEqual(_factor_names(result), ["High Blood Pressure", "Low Blood Pressure"])

    def test_level_thresholds(self):
        self.assertEqual(risk_level_for(0), "Low Risk")
        self.assertEqual(risk_level_for(24), "Low Risk")
        self.assertEqual(risk_level_for(25), "Medium Risk")
        self.assertEqual(risk_level_for(74), "Medium Risk")
        self.assertEqual(risk_level_for(75), "High Risk")
        self.assertEqual(risk_level_for(100), "High Risk")

    def test_medium_risk_recommendation(self):
        result = calculate_risk_score(_with(age=70, heart_rate=110))
        self.assertEqual(result["riskScore"], 35)
        self.assertEqual(result["riskLevel"], "Medium Risk")
        self.assertIn("within the next week", result["recommendation"])

    def test_only_present_factors_returned(self):
        result = calculate_risk_score(_with(age=70, bmi=17, oxygen_sat=93))
        self.assertTrue(all(f["value"] is True for f in result["riskFactors"]))

    def test_score_is_bounded_integer(self):
        rng = random.Random(7)
        for _ in range(200):
            vitals = {
                "age": rng.randint(0, 100), "systolic_bp": rng.randint(70, 200),
                "diastolic_bp": rng.randint(40, 120), "heart_rate": rng.randint(30, 180),
                "resp_rate": rng.randint(5, 40), "oxygen_sat": rng.uniform(80, 100),
                "body_temp": rng.uniform(34, 41), "bmi": rng.uniform(14, 45),
                "hrv": rng.uniform(0, 0.2),
            }
            result = calculate_risk_score(vitals)
            self.assertIsInstance(result["riskScore"], int)
            self.assertGreaterEqual(result["riskScore"], 0)
            self.assertLessEqual(result["riskScore"], 100)
            self.assertEqual(result["riskLevel"], risk_level_for(result["riskScore"]))
            self.assertLessEqual(len(result["suggestedActions"]), 5)
            self.assertEqual(result["suggestedActions"][0]["text"], "Monitor vitals regularly")

    def test_missing_values_skip_rules(self):
        result = calculate_risk_score(_with(heart_rate=None, bmi=None))
        self.assertEqual(result["riskScore"], 0)
        display = {v["name"]: v for v in result["vitals"]}
        self.assertEqual(display["Heart Rate"]["value"], "N/A BPM")
        self.assertFalse(display["Heart Rate"]["normal"])
        self.assertEqual(display["BMI"]["value"], "N/A")


class TestVitalsDisplay(unittest.TestCase):
    """Display rows and their normal flags."""

    def test_channels_and_formatting(self):
        result = calculate_risk_score(_with(body_temp=37.0, bmi=22.94))
        rows = result["vitals"]
        self.assertEqual([r["name"] for r in rows], [
            "Heart Rate", "Respiratory Rate", "Body Temperature",
            "Oxygen Saturation", "Blood Pressure", "BMI",
        ])
        values = {r["name"]: r["value"] for r in rows}
        self.assertEqual(values["Heart Rate"], "70 BPM")
        self.assertEqual(values["Respiratory Rate"], "15 breaths/min")
        self.assertEqual(values["Body Temperature"], "37°C")
        self.assertEqual(values["Oxygen Saturation"], "99%")
        self.assertEqual(values["Blood Pressure"], "110/70 mmHg")
        self.assertEqual(values["BMI"], "22.9")
        self.assertTrue(all(r["normal"] for r in rows))

    def test_abnormal_flags_independent_of_score(self):
        # 36.2°C is outside the display band but above the hypothermia rule
        result = calculate_risk_score(_with(body_temp=36.2, systolic_bp=125))
        flags = {r["name"]: r["normal"] for r in result["vitals"]}
        self.assertFalse(flags["Body Temperature"])
        self.assertFalse(flags["Blood Pressure"])
        self.assertEqual(result["riskScore"], 0)

    def test_raw_record_display(self):
        rows = vitals_display({"heart_rate": 72.0, "systolic_bp": 118, "diastolic_bp": 76})
        self.assertEqual(rows[0], {"name": "Heart Rate", "value": "72 BPM", "normal": True})
        self.assertEqual(rows[4]["value"], "118/76 mmHg")
        self.assertTrue(rows[4]["normal"])
        self.assertEqual(rows[5], {"name": "BMI", "value": "N/A", "normal": False})


class TestFactorLedger(unittest.TestCase):
    """Every category reaches the action generator, including its false entry."""

    def _ledger(self, vitals):
        with mock.patch.object(predict, "generate_suggested_actions", wraps=generate_suggested_actions) as spy:
            calculate_risk_score(vitals)
        return spy.call_args.args[1]

    def test_false_labels_for_healthy_patient(self):
        self.assertEqual(self._ledger(HEALTHY), [
            {"name": "Advanced Age", "value": False},
            {"name": "High Blood Pressure", "value": False},
            {"name": "Low Blood Pressure", "value": False},
            {"name": "Abnormal Heart Rate", "value": False},
            {"name": "Abnormal Respiratory Rate", "value": False},
            {"name": "Low Oxygen Saturation", "value": False},
            {"name": "Abnormal Temperature", "value": False},
            {"name": "Abnormal BMI", "value": False},
            {"name": "Low Heart Rate Variability", "value": False},
        ])

    def test_one_entry_per_category(self):
        ledger = self._ledger(_with(age=60, heart_rate=50, oxygen_sat=96, bmi=17))
        self.assertEqual(len(ledger), 9)
        present = [f["name"] for f in ledger if f["value"]]
        self.assertEqual(present, ["Increased Age", "Low Heart Rate", "Borderline Oxygen Saturation", "Underweight"])


class TestRounding(unittest.TestCase):

    def test_halves_round_up(self):
        self.assertEqual(round_half_up(42.5), 43)
        self.assertEqual(round_half_up(12.5), 13)
        self.assertEqual(round_half_up(0.49), 0)
        self.assertEqual(round_half_up(-2.5), -2)
        self.assertEqual(round_half_up(-33.4), -33)


class TestSuggestedActions(unittest.TestCase):

    def test_priority_order_and_cap(self):
        factors = [
            {"name": "High Blood Pressure", "value": True},
            {"name": "Low Oxygen Saturation", "value": True},
            {"name": "Obesity", "value": True},
        ]
        actions = generate_suggested_actions(80, factors)
        self.assertEqual(_action_texts(actions), [
            "Monitor vitals regularly", "Schedule follow-up", "Review medication",
            "Consider hospital admission", "Blood pressure management",
        ])

    def test_false_factors_ignored(self):
        factors = [
            {"name": "High Blood Pressure", "value": False},
            {"name": "Low Oxygen Saturation", "value": False},
            {"name": "Abnormal BMI", "value": False},
        ]
        self.assertEqual(_action_texts(generate_suggested_actions(10, factors)), ["Monitor vitals regularly"])

    def test_factor_actions_below_follow_up(self):
        factors = [
            {"name": "Borderline Oxygen Saturation", "value": True},
            {"name": "Underweight", "value": True},
        ]
        actions = generate_suggested_actions(15, factors)
        self.assertEqual(_action_texts(actions), [
            "Monitor vitals regularly", "Respiratory assessment", "Nutrition consultation",
        ])
        self.assertEqual(actions[1]["icon"], "lungs")

    def test_score_tiers(self):
        self.assertEqual(len(generate_suggested_actions(25, [])), 2)
        self.assertEqual(len(generate_suggested_actions(50, [])), 3)
        self.assertEqual(len(generate_suggested_actions(75, [])), 4)


class TestReport(unittest.TestCase):

    def test_report_contents(self):
        when = datetime(2024, 3, 5, 10, 30)
        report = generate_report({
            "id": "PAT-123456-007", "name": "Jane Doe", "riskScore": 40, "riskLevel": "Medium Risk",
            "vitals": {"heart_rate": 88, "resp_rate": 18, "body_temp": 37.2, "oxygen_sat": 97.0,
                       "systolic_bp": 130, "diastolic_bp": 85, "bmi": 26.1},
        }, when=when)
        self.assertIn("Date: March 5, 2024", report)
        self.assertIn("Patient: Jane Doe", report)
        self.assertIn("Risk Score: 40%", report)
        self.assertIn("Blood Pressure: 130/85 mmHg", report)
        self.assertIn("Oxygen Saturation: 97%", report)
        self.assertIn("BMI: 26.1", report)
        self.assertTrue(report.rstrip().endswith("Generated by HealthRisk Assessment Tool"))

    def test_report_filename(self):
        self.assertEqual(
            report_filename("PAT-1", when=datetime(2024, 12, 25)),
            "risk-assessment-PAT-1-December 25, 2024.txt",
        )

    def test_patient_id_format(self):
        pid = generate_patient_id(now=1700000123.0, rng=random.Random(1))
        prefix, millis, rnd = pid.split("-")
        self.assertEqual(prefix, "PAT")
        self.assertEqual(millis, "123000")
        self.assertEqual(len(rnd), 3)
        self.assertTrue(rnd.isdigit())


if __name__ == "__main__":
    unittest.main(verbosity=2)

import logging
from datetime import datetime

import streamlit as st
import pandas as pd
import matplotlib.pyplot as plt

from config import APP, FORM_DEFAULTS, GENDERS, HIGH_RISK, MEDIUM_RISK
from predict import (
    calculate_derived_measurements,
    calculate_risk_score,
    generate_patient_id,
    generate_report,
    report_filename,
    vitals_display,
)
from analytics import (
    records_frame,
    report_payload,
    search_records,
    sort_records,
    filter_by_time_range,
    filter_by_patient,
    risk_distribution,
    average_risk_score,
    high_risk_percentage,
    average_vitals,
    vitals_trend,
)
from storage import (
    StorageError,
    init_db,
    save_assessment,
    fetch_patients,
    fetch_latest_assessments,
    delete_assessment,
    get_statistics,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

st.set_page_config(page_title=APP["title"], layout="wide")

init_db()

# -------------------------
# Header + Statistics
# -------------------------
st.title(APP["title"])
st.info(APP["disclaimer"])

stats = get_statistics()
m1, m2, m3, m4 = st.columns(4)
m1.metric("Patients", stats["total"], f"{stats['trend']['total']}%")
m2.metric("Low risk", stats["lowRisk"], f"{stats['trend']['lowRisk']}%")
m3.metric("Medium risk", stats["mediumRisk"], f"{stats['trend']['mediumRisk']}%")
m4.metric("High risk", stats["highRisk"], f"{stats['trend']['highRisk']}%", delta_color="inverse")

tabs = st.tabs(["1) New Assessment", "2) Records", "3) Analytics"])

# -------------------------
# Helpers
# -------------------------
def _show_level(level: str, text: str) -> None:
    if level == HIGH_RISK:
        st.error(text)
    elif level == MEDIUM_RISK:
        st.warning(text)
    else:
        st.success(text)

def _show_vitals(rows) -> None:
    vdf = pd.DataFrame(rows)
    vdf["status"] = vdf["normal"].map({True: "Normal", False: "Abnormal"})
    st.dataframe(vdf[["name", "value", "status"]], use_container_width=True, hide_index=True)

def _load_records(limit: int = 1000) -> pd.DataFrame:
    """Stored assessments as a frame; empty (with an error shown) if the database fails."""
    try:
        return records_frame(fetch_latest_assessments(limit))
    except StorageError as exc:
        logger.error("Could not load records: %s", exc)
        st.error(f"Records could not be loaded: {exc}")
        return records_frame([])

# -------------------------
# 1) New Assessment
# -------------------------
with tabs[0]:
    st.subheader("Enter patient vitals")

    if "patient_id" not in st.session_state:
        st.session_state["patient_id"] = generate_patient_id()

    c_name, c_id, c_new = st.columns([3, 2, 1])
    with c_name:
        patient_name = st.text_input("Patient name")
    with c_id:
        patient_id = st.text_input("Patient ID", value=st.session_state["patient_id"])
    with c_new:
        st.write("")
        if st.button("New ID"):
            st.session_state["patient_id"] = generate_patient_id()
            st.rerun()

    col1, col2, col3 = st.columns(3)
    with col1:
        heart_rate = st.number_input("Heart rate (BPM)", min_value=0, max_value=250, value=FORM_DEFAULTS["heart_rate"])
        resp_rate = st.number_input("Respiratory rate (breaths/min)", min_value=0, max_value=80, value=FORM_DEFAULTS["resp_rate"])
        body_temp = st.number_input("Body temperature (°C)", min_value=30.0, max_value=45.0, value=FORM_DEFAULTS["body_temp"], step=0.1)
        oxygen_sat = st.number_input("Oxygen saturation (%)", min_value=50.0, max_value=100.0, value=FORM_DEFAULTS["oxygen_sat"], step=0.5)
    with col2:
        systolic_bp = st.number_input("Systolic BP (mmHg)", min_value=0, max_value=300, value=FORM_DEFAULTS["systolic_bp"])
        diastolic_bp = st.number_input("Diastolic BP (mmHg)", min_value=0, max_value=200, value=FORM_DEFAULTS["diastolic_bp"])
        hrv = st.number_input("Heart rate variability", min_value=0.0, max_value=1.0, value=FORM_DEFAULTS["hrv"], step=0.01)
    with col3:
        age = st.number_input("Age", min_value=0, max_value=120, value=FORM_DEFAULTS["age"])
        gender = st.selectbox("Gender", list(GENDERS), format_func=GENDERS.get, index=FORM_DEFAULTS["gender"])
        weight = st.number_input("Weight (kg)", min_value=0.0, max_value=400.0, value=FORM_DEFAULTS["weight"], step=0.5)
        height = st.number_input("Height (m)", min_value=0.0, max_value=2.5, value=FORM_DEFAULTS["height"], step=0.01)

    form_data = calculate_derived_measurements({
        "heart_rate": heart_rate,
        "resp_rate": resp_rate,
        "body_temp": body_temp,
        "oxygen_sat": oxygen_sat,
        "systolic_bp": systolic_bp,
        "diastolic_bp": diastolic_bp,
        "age": age,
        "gender": gender,
        "weight": weight,
        "height": height,
        "hrv": hrv,
    })

    d1, d2, d3 = st.columns(3)
    d1.metric("BMI", form_data.get("bmi", "N/A"))
    d2.metric("Pulse pressure (mmHg)", form_data.get("pulse_pressure", "N/A"))
    d3.metric("MAP (mmHg)", form_data.get("map", "N/A"))

    if st.button("Calculate risk"):
        if not patient_name.strip():
            st.error("Please enter a patient name.")
            st.stop()
        if "bmi" not in form_data:
            st.error("Enter weight and height so BMI can be derived.")
            st.stop()

        pid = patient_id.strip() or generate_patient_id()
        result = calculate_risk_score(form_data)
        st.session_state["last_result"] = result
        st.session_state["last_assessment"] = {
            "id": pid,
            "name": patient_name.strip(),
            "timestamp": datetime.now(),
            "riskScore": result["riskScore"],
            "riskLevel": result["riskLevel"],
            "vitals": form_data,
        }

        try:
            save_assessment(
                pid,
                patient_name.strip(),
                result["riskScore"],
                result["riskLevel"],
                form_data,
                risk_factors=result["riskFactors"],
                timestamp=st.session_state["last_assessment"]["timestamp"],
            )
            st.success("Assessment saved ✅")
            st.session_state["patient_id"] = generate_patient_id()
        except StorageError as exc:
            logger.error("Could not save assessment: %s", exc)
            st.error(f"Assessment could not be saved: {exc}")

    result = st.session_state.get("last_result")
    if result:
        assessment = st.session_state["last_assessment"]
        st.markdown("### Result")
        st.write(f"**Risk score:** {result['riskScore']}%")
        _show_level(result["riskLevel"], f"{result['riskLevel']}: {result['recommendation']}")

        r1, r2 = st.columns(2)
        with r1:
            st.write("**Risk factors**")
            if result["riskFactors"]:
                for f in result["riskFactors"]:
                    st.write("•", f["name"])
            else:
                st.write("None detected.")
            st.write("**Suggested actions**")
            for a in result["suggestedActions"]:
                st.write("•", a["text"])
        with r2:
            st.write("**Vitals**")
            _show_vitals(result["vitals"])

        st.download_button(
            "Download report",
            data=generate_report(assessment),
            file_name=report_filename(assessment["id"]),
            mime="text/plain",
        )

# -------------------------
# 2) Records
# -------------------------
with tabs[1]:
    st.subheader("Assessment records")

    df = _load_records()
    if df.empty:
        st.info("No assessments saved yet.")
    else:
        s1, s2, s3 = st.columns([3, 2, 1])
        with s1:
            term = st.text_input("Search by name or patient ID")
        with s2:
            sort_key = st.selectbox("Sort by", ["timestamp", "name", "patient_id", "risk_score", "risk_level"])
        with s3:
            descending = st.toggle("Descending", value=True)

        view = sort_records(search_records(df, term), sort_key, descending)
        table_cols = ["assessment_id"] + [c for c in view.columns if c not in ("assessment_id", "vitals")]
        st.dataframe(view[table_cols],
                     use_container_width=True, hide_index=True)

        if not view.empty:
            selected = st.selectbox(
                "Select a record",
                view["assessment_id"].tolist(),
                format_func=lambda i: f"#{i} - {view.loc[view['assessment_id'] == i, 'name'].iloc[0]}",
            )
            row = view[view["assessment_id"] == selected].iloc[0]
            st.write(f"**{row['name']}** ({row['patient_id']}) - {row['timestamp']:%Y-%m-%d %H:%M}")
            _show_level(row["risk_level"], f"{row['risk_level']} ({row['risk_score']}%)")

            _show_vitals(vitals_display(row["vitals"] or {}))

            st.download_button(
                "Download report",
                data=generate_report(report_payload(row)),
                file_name=report_filename(row["patient_id"]),
                mime="text/plain",
                key=f"report_{selected}",
            )

            confirm = st.checkbox("I understand this cannot be undone", key=f"confirm_{selected}")
            if st.button("Delete record", disabled=not confirm):
                try:
                    if delete_assessment(int(selected)):
                        st.success("Record deleted.")
                        st.rerun()
                    else:
                        st.warning("Record was already removed.")
                except StorageError as exc:
                    st.error(str(exc))

# -------------------------
# 3) Analytics
# -------------------------
with tabs[2]:
    st.subheader("Analytics")

    df = _load_records()
    if df.empty:
        st.info("No data available yet.")
    else:
        try:
            patients = fetch_patients(100)
        except StorageError as exc:
            logger.error("Could not load patients: %s", exc)
            st.error(f"Patient list could not be loaded: {exc}")
            patients = []
        options = ["all"] + [p["patient_id"] for p in patients]
        names = {p["patient_id"]: p["name"] for p in patients}

        f1, f2 = st.columns(2)
        with f1:
            time_range = st.selectbox("Time range", ["week", "month", "quarter", "all"])
        with f2:
            patient_filter = st.selectbox(
                "Patient",
                options,
                format_func=lambda p: "All patients" if p == "all" else f"{names.get(p, 'Unknown')} ({p})",
            )

        view = filter_by_patient(filter_by_time_range(df, time_range), patient_filter)

        if view.empty:
            st.info("No data available for the selected filters.")
        else:
            k1, k2, k3 = st.columns(3)
            k1.metric("Assessments", len(view))
            k2.metric("Average risk score", f"{average_risk_score(view)}%")
            k3.metric("High risk", f"{high_risk_percentage(view)}%")

            trend = vitals_trend(view)

            st.write("### Risk score trend")
            fig = plt.figure()
            plt.plot(trend.index, trend["risk_score"], marker="o")
            plt.ylim(0, 100)
            plt.xticks(rotation=30)
            st.pyplot(fig)

            st.write("### Risk distribution")
            dist = risk_distribution(view)
            fig = plt.figure()
            plt.bar(list(dist), list(dist.values()), color=["tab:green", "tab:orange", "tab:red"])
            st.pyplot(fig)

            st.write("### Vitals trend")
            fig = plt.figure()
            for col, label in [("heart_rate", "Heart rate"), ("resp_rate", "Resp. rate"), ("oxygen_sat", "SpO₂")]:
                plt.plot(trend.index, pd.to_numeric(trend[col], errors="coerce"), label=label)
            plt.legend()
            plt.xticks(rotation=30)
            st.pyplot(fig)

            st.write("### Average vitals")
            avg = average_vitals(view)
            st.write(f"- Heart rate: **{avg['heart_rate']} BPM**")
            st.write(f"- Respiratory rate: **{avg['resp_rate']} breaths/min**")
            st.write(f"- Oxygen saturation: **{avg['oxygen_sat']}%**")

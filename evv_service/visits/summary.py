"""Visit durations and EVV compliance metrics for payroll and supervisor review"""
from datetime import timedelta
from typing import Dict, Iterable, List, Optional
from evv_service.visits.models import VisitStatus


def visit_duration(record) -> Optional[timedelta]:
    """Time between check-in and check-out, or None for an unfinished visit."""
    if record.check_in_time is None or record.check_out_time is None:
        return None
    return record.check_out_time - record.check_in_time


def format_duration(duration: Optional[timedelta]) -> str:
    """Render a duration as "Xh Ym"."""
    if duration is None:
        return "Incomplete"
    total_seconds = int(duration.total_seconds())
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    return f"{hours}h {minutes}m"


def billable_hours(record) -> Optional[float]:
    duration = visit_duration(record)
    if duration is None:
        return None
    return round(duration.total_seconds() / 3600, 2)


def _is_verified(record) -> bool:
    return bool((record.supervisor_verification or {}).get("verified"))


def _location_accuracies(records: Iterable) -> List[float]:
    accuracies = []
    for record in records:
        for location in (record.check_in_location, record.check_out_location):
            if location and location.get("accuracy_meters") is not None:
                accuracies.append(float(location["accuracy_meters"]))
    return accuracies


def compute_compliance_metrics(records: List) -> Dict:
    """
    Compute EVV compliance metrics from a list of visit records.

    Metrics computed:
    - compliance_rate: Percentage of visits that reached check-out
    - verification_rate: Percentage of completed visits a supervisor verified
    - average_accuracy_meters: Mean GPS accuracy over all captured locations

    Args:
        records: List of VisitRecord objects

    Returns:
        Dictionary with computed metrics
    """
    if not records:
        return {
            "total_visits": 0,
            "completed_visits": 0,
            "verified_visits": 0,
            "compliance_rate": 0.0,
            "verification_rate": 0.0,
            "average_accuracy_meters": None,
            "total_billable_hours": 0.0,
        }

    total = len(records)
    completed = [r for r in records if r.status == VisitStatus.COMPLETED.value]
    verified = [r for r in completed if _is_verified(r)]
    accuracies = _location_accuracies(records)
    hours = [billable_hours(r) for r in completed]

    return {
        "total_visits": total,
        "completed_visits": len(completed),
        "verified_visits": len(verified),
        "compliance_rate": round(len(completed) / total * 100, 2),
        "verification_rate": round(len(verified) / len(completed) * 100, 2) if completed else 0.0,
        "average_accuracy_meters": round(sum(accuracies) / len(accuracies), 2) if accuracies else None,
        "total_billable_hours": round(sum(h for h in hours if h is not None), 2),
    }

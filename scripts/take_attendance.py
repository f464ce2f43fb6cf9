"""
Take attendance for a class from a group photo.

By default the photo is posted to a running API (POST /api/attendance).
With --local the attendance service runs in-process against the configured
storage.

Usage:
    # API mode (server must be running: python -m api.app)
    python scripts/take_attendance.py --class 10A --period 2 --photo class.jpg

    # In-process
    python scripts/take_attendance.py --class 10A --period 2 --photo class.jpg --local

    # Custom date / server
    python scripts/take_attendance.py --class 10A --period 2 --photo class.jpg \
        --date 2026-03-02 --api-url http://localhost:5000

Author: CS-1
"""

import argparse
import logging
import sys
from datetime import date as date_type
from pathlib import Path

import httpx

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.config import get_api_config  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def print_banner(text: str, char: str = "="):
    line = char * 60
    print(f"\n{line}")
    print(text)
    print(line)


def print_result(result: dict):
    """Print a TakeAttendanceResponse-shaped dict."""
    print_banner(result["message"])
    if result.get("degraded"):
        print(f"  WARNING: synthetic attendance ({result['mode']})")

    for entry in result.get("attendance", []):
        distance = entry.get("distance")
        detail = f"distance={distance:.3f}" if distance is not None else (entry.get("reason") or "")
        print(f"  {entry['rollNo']:<12} {entry['studentName']:<24} {entry['status']:<8} {detail}")

    summary = result["summary"]
    print(f"\n  Total: {summary['totalStudents']}  "
          f"Present: {summary['present']}  Absent: {summary['absent']}")


def submit_to_api(api_url: str, class_id: str, period: int, date: str, photo: Path) -> dict:
    """POST the photo to /api/attendance and return the JSON body."""
    with open(photo, "rb") as f:
        response = httpx.post(
            f"{api_url.rstrip('/')}/api/attendance",
            data={"classId": class_id, "period": str(period), "date": date},
            files={"classPhoto": (photo.name, f, "image/jpeg")},
            timeout=120.0,
        )

    if response.status_code != 201:
        detail = response.json().get("detail", response.text)
        raise RuntimeError(f"API returned {response.status_code}: {detail}")

    return response.json()


def run_local(class_id: str, period: int, date: str, photo: Path) -> dict:
    """Run the attendance service in-process; returns the API-shaped dict."""
    from core.attendance_service import get_attendance_service

    service = get_attendance_service()
    outcome = service.take_attendance(class_id, period=period, date=date, photo_path=str(photo))
    students = {s.student_id: s for s in service.store.get_roster(class_id)}

    return {
        "message": outcome.message,
        "mode": outcome.mode.value,
        "degraded": outcome.is_degraded,
        "attendance": [
            {
                "studentId": r.student_id,
                "studentName": students[r.student_id].name if r.student_id in students else "",
                "rollNo": students[r.student_id].roll_no if r.student_id in students else "",
                "status": r.status.value,
                "distance": r.distance,
                "reason": r.reason,
            }
            for r in outcome.records
        ],
        "summary": outcome.summary.to_dict(),
    }


def main():
    api_config = get_api_config()

    parser = argparse.ArgumentParser(description="Take attendance from a class photo")
    parser.add_argument("--class", dest="class_id", required=True, help="Class identifier")
    parser.add_argument("--period", type=int, required=True, help="Period number")
    parser.add_argument("--photo", type=str, required=True, help="Group photo of the class")
    parser.add_argument("--date", type=str, default=date_type.today().isoformat(),
                        help="Event date, YYYY-MM-DD (default: today)")
    parser.add_argument("--api-url", type=str,
                        default=api_config.get("base_url", "http://localhost:5000"),
                        help="Attendance API base URL")
    parser.add_argument("--local", action="store_true", help="Run in-process instead of via the API")
    args = parser.parse_args()

    photo = Path(args.photo)
    if not photo.is_file():
        parser.error(f"Photo not found: {photo}")

    try:
        if args.local:
            result = run_local(args.class_id, args.period, args.date, photo)
        else:
            result = submit_to_api(args.api_url, args.class_id, args.period, args.date, photo)
    except httpx.HTTPError as e:
        logger.error(f"Could not reach the API at {args.api_url}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Attendance failed: {e}")
        return 1

    print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())

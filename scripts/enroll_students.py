"""
Bulk-enroll students from a directory of portrait photos.

Each photo file name encodes the student: `<roll_no>_<name>.<ext>`, where
underscores in the name become spaces (e.g. `R-001_Alice_Smith.jpg`).
One descriptor is extracted per photo and stored with the student record,
bypassing the HTTP API.

Usage:
    python scripts/enroll_students.py --class 10A --photos-dir data/class_10A

    # Single student
    python scripts/enroll_students.py --class 10A --photo alice.jpg \
        --name "Alice Smith" --roll-no R-001

Author: CS-1
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Tuple

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.attendance_service import get_attendance_service  # noqa: E402
from core.attendance_store import DuplicateRollNumber  # noqa: E402
from core.matching import DescriptorExtractionFailed, NoFaceDetected  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp"}


def parse_photo_name(path: Path) -> Tuple[str, str]:
    """Split `<roll_no>_<name>` into (roll_no, name)."""
    roll_no, sep, name = path.stem.partition("_")
    if not sep or not roll_no or not name:
        raise ValueError(f"Expected <roll_no>_<name>, got {path.name}")
    return roll_no, name.replace("_", " ")


def collect_photos(photos_dir: Path) -> List[Path]:
    """Image files of a directory, sorted by name (the enrollment order)."""
    return sorted(
        p for p in photos_dir.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )


def main():
    parser = argparse.ArgumentParser(description="Enroll students from portrait photos")
    parser.add_argument("--class", dest="class_id", required=True, help="Class identifier")
    parser.add_argument("--photos-dir", type=str, help="Directory of <roll_no>_<name> photos")
    parser.add_argument("--photo", type=str, help="Single portrait photo")
    parser.add_argument("--name", type=str, help="Student name (with --photo)")
    parser.add_argument("--roll-no", type=str, help="Roll number (with --photo)")
    args = parser.parse_args()

    if args.photos_dir:
        photos_dir = Path(args.photos_dir)
        if not photos_dir.is_dir():
            parser.error(f"Not a directory: {photos_dir}")
        try:
            entries = [(p, *parse_photo_name(p)) for p in collect_photos(photos_dir)]
        except ValueError as e:
            parser.error(str(e))
    elif args.photo:
        if not args.name or not args.roll_no:
            parser.error("--photo requires --name and --roll-no")
        entries = [(Path(args.photo), args.roll_no, args.name)]
    else:
        parser.error("Provide --photos-dir or --photo")

    service = get_attendance_service()

    enrolled, skipped = 0, 0
    for photo, roll_no, name in entries:
        try:
            image = service.extractor.load_image(str(photo))
            student = service.enroll_student(
                name=name,
                roll_no=roll_no,
                class_id=args.class_id,
                image=image,
                photo_path=str(photo.resolve()),
            )
        except DuplicateRollNumber:
            logger.warning(f"Skipping {photo.name}: roll number {roll_no} already enrolled")
            skipped += 1
            continue
        except (NoFaceDetected, DescriptorExtractionFailed) as e:
            logger.error(f"Skipping {photo.name}: {e}")
            skipped += 1
            continue

        logger.info(f"Enrolled {student.name} ({student.roll_no}) as {student.student_id}")
        enrolled += 1

    print(f"\nClass {args.class_id}: {enrolled} enrolled, {skipped} skipped")
    return 0 if skipped == 0 else 1


if __name__ == "__main__":
    sys.exit(main())

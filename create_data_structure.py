# create_data_structure.py
"""
Bootstrap the reference list file the indicator scanner loads.
Run this script once, then edit data/indicator_lists.json to tune the lists.
"""

import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from sentinelmind.services.reference_lists import LISTS_FILENAME, ReferenceLists


def create_data_directory(data_dir: Optional[str] = None) -> Path:
    """Create the data directory"""
    path = Path(data_dir) if data_dir else Path("data")
    path.mkdir(parents=True, exist_ok=True)
    return path


def create_indicator_lists() -> Dict[str, Any]:
    """Default reference lists wrapped with version metadata"""
    return {
        "version": "1.0",
        "updated": date.today().isoformat(),
        "lists": ReferenceLists().to_dict(),
    }


def create_all_data_files(data_dir: Optional[str] = None) -> Path:
    """Write every data file; returns the data directory"""
    path = create_data_directory(data_dir)

    file_path = path / LISTS_FILENAME
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(create_indicator_lists(), f, indent=2, ensure_ascii=False)
    print(f"Created {file_path}")

    return path


if __name__ == "__main__":
    create_all_data_files(sys.argv[1] if len(sys.argv) > 1 else None)

"""Local storage for artifacts downloaded from the engine."""

import logging
import os
from datetime import datetime
from typing import Optional
from shared.constants import DEFAULT_OUTPUT_DIR, OUTPUT_TIMESTAMP_FORMAT
from shared.utils import utc_now


class OutputStore:

    def __init__(self, output_dir: str = DEFAULT_OUTPUT_DIR):
        self.output_dir = output_dir

    def save(
        self,
        data: bytes,
        subfolder: str,
        prefix: str,
        prompt_id: str,
        extension: str,
        now: Optional[datetime] = None,
    ) -> str:
        """Writes data under output_dir/subfolder and returns its web path"""
        timestamp = (now or utc_now()).strftime(OUTPUT_TIMESTAMP_FORMAT)
        filename = f"{prefix}_{prompt_id}_{timestamp}{extension}"

        directory = os.path.join(self.output_dir, subfolder)
        os.makedirs(directory, exist_ok=True)
        with open(os.path.join(directory, filename), "wb") as f:
            f.write(data)

        logging.info(
            "Saved generated file",
            extra={"prompt_id": prompt_id, "file_name": filename, "size_bytes": len(data)}
        )
        return f"/{subfolder}/{filename}"

from __future__ import annotations
from datetime import datetime
from typing import Callable
import uuid

Clock = Callable[[], datetime]

def gen_id() -> str:
    return str(uuid.uuid4())

def system_clock() -> datetime:
    # naive local time, same as the import timestamps
    return datetime.now()

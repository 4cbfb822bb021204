# Functions for working with IST

import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


IST = ZoneInfo("Asia/Kolkata")

def now_epoch():
    return int(time.time())

def now_ist_iso():
    return datetime.now(IST).isoformat()

def epoch_to_ist_iso(ts):
    if not ts:
        return "never"
    return datetime.fromtimestamp(ts, tz=timezone.utc).astimezone(IST).isoformat()

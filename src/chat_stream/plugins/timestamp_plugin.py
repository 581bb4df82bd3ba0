from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ..tool_registry import NoParameters, ToolDescriptor

# Display label and IANA zone; the zone follows daylight saving like a wall clock there.
STANDARD_ZONES = [
    ("Western European Time (WET)", "Europe/Lisbon"),
    ("Central European Time (CET)", "Europe/Amsterdam"),
    ("Eastern European Time (EET)", "Europe/Bucharest"),
    ("Eastern Standard Time (EST)", "America/New_York"),
    ("Central Standard Time (CST)", "America/Chicago"),
    ("Pacific Standard Time (PST)", "America/Los_Angeles"),
]

DATE_FORMAT = "%B %d, %Y %H:%M:%S"


class TimestampPlugin:
    """Plugin that tells the model the current date and time."""

    def __init__(self, timezone_offset=0, timezone_name="UTC"):
        """Initialize timestamp plugin with the caller's local timezone.

        Parameters
        ----------
        timezone_offset : int, optional
            Minutes offset from UTC as reported by a browser (default: 0)
        timezone_name : str, optional
            Timezone name for display (default: "UTC")
        """
        self.timezone_name = timezone_name
        self.timezone = timezone(-timedelta(minutes=timezone_offset))

    def format_timestamp(self, now: datetime, zone_name: str) -> str:
        return now.astimezone(ZoneInfo(zone_name)).strftime(DATE_FORMAT)

    def current_date_time(self, params, assistant_message, history, abort_signal=None) -> str:
        now = datetime.now(timezone.utc)
        local = now.astimezone(self.timezone).strftime(DATE_FORMAT)
        lines = [
            f"Local date is {local} {self.timezone_name}",
            f"UTC date is {now.strftime(DATE_FORMAT)}",
        ]
        for label, zone_name in STANDARD_ZONES:
            lines.append(f"{label} is {self.format_timestamp(now, zone_name)}")
        return "\n".join(lines)

    def hook_provide_tools(self):
        return [
            ToolDescriptor(
                name="get_current_date_time",
                title="Current datetime",
                description="Returns the current date and time in various timezones",
                parameters=NoParameters,
                action=self.current_date_time,
            )
        ]

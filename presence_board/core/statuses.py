from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StatusProfile:
    """One coherent presence vocabulary. Deployments pick exactly one."""

    name: str
    labels: dict[str, tuple[str, str]]  # value -> (label, label_en)
    off_duty: str

    @property
    def values(self) -> tuple[str, ...]:
        return tuple(self.labels)

    def __contains__(self, value: object) -> bool:
        return value in self.labels

    def describe(self) -> dict:
        return {
            "profile": self.name,
            "offDuty": self.off_duty,
            "statuses": [
                {"value": value, "label": label, "labelEn": label_en}
                for value, (label, label_en) in self.labels.items()
            ],
        }


ATTENDANCE_PROFILE = StatusProfile(
    name="attendance",
    labels={
        "on-site": ("出社", "On-site"),
        "remote": ("テレワーク", "Remote"),
        "direct-commute": ("直行", "Direct commute"),
        "direct-return": ("直帰", "Direct return"),
        "offline": ("退社", "Offline"),
    },
    off_duty="offline",
)

SELF_REPORT_PROFILE = StatusProfile(
    name="self-report",
    labels={
        "on-site": ("出社", "On-site"),
        "absent": ("休み", "Absent"),
        "out": ("外出", "Out"),
        "remote": ("テレワーク", "Remote"),
        "off": ("退勤", "Off"),
    },
    off_duty="off",
)

PROFILES = {p.name: p for p in (ATTENDANCE_PROFILE, SELF_REPORT_PROFILE)}


def get_profile(name: str) -> StatusProfile:
    return PROFILES[name]

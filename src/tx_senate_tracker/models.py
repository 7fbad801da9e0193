from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


class BillStatus(str, enum.Enum):
    """Closed set of lifecycle states a bill record can carry."""

    FILED = "Filed"
    IN_COMMITTEE = "In Committee"
    PASSED = "Passed"
    SIGNED = "Signed"
    VETOED = "Vetoed"
    EFFECTIVE = "Effective"

    @classmethod
    def coerce(cls, value: str | BillStatus | None) -> BillStatus:
        """Return the matching member, or ``FILED`` for anything unknown."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value:
                return member
        return cls.FILED


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Sponsor:
    name: str
    district: str = ""
    photo_url: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "district": self.district, "photoUrl": self.photo_url}

    @classmethod
    def from_dict(cls, d: dict) -> Sponsor:
        return cls(
            name=d.get("name", ""),
            district=d.get("district", "") or "",
            photo_url=d.get("photoUrl", "") or "",
        )


@dataclass
class Stage:
    stage_number: int
    action: str  # e.g. "Passed the Senate"
    status: BillStatus = BillStatus.FILED  # inferred from action
    date: str = ""  # ISO YYYY-MM-DD, "" when the source gave none

    def to_dict(self) -> dict:
        return {
            "stageNumber": self.stage_number,
            "action": self.action,
            "status": self.status.value,
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Stage:
        return cls(
            stage_number=int(d.get("stageNumber", 0) or 0),
            action=d.get("action", ""),
            status=BillStatus.coerce(d.get("status")),
            date=d.get("date", "") or "",
        )


@dataclass
class BillRecord:
    id: str  # canonical, e.g. "SB1" -- unique storage key
    short_title: str
    full_title: str
    status: BillStatus = BillStatus.FILED
    abstract: str = ""
    sponsors: list[Sponsor] = field(default_factory=list)  # first entry is primary author
    co_sponsors: list[str] = field(default_factory=list)
    committee: str = ""
    stages: list[Stage] = field(default_factory=list)
    last_action: str = ""
    filed_date: str = ""
    last_action_date: str = ""
    last_updated: str = field(default_factory=utc_now_iso)
    official_url: str = ""
    session: str = ""  # e.g. "89R"
    bill_text: str = ""
    topics: list[str] = field(default_factory=list)
    # Only set on fallback data
    is_stale: bool = False
    fallback_message: str = ""
    is_placeholder: bool = False

    @property
    def display_id(self) -> str:
        from .identifiers import to_display_format

        return to_display_format(self.id)

    def to_dict(self) -> dict:
        """Serialize to the camelCase document handed to the store."""
        d = {
            "id": self.id,
            "billNumber": self.display_id,
            "displayId": self.display_id,
            "shortTitle": self.short_title,
            "fullTitle": self.full_title,
            "status": self.status.value,
            "abstract": self.abstract,
            "sponsors": [s.to_dict() for s in self.sponsors],
            "coSponsors": list(self.co_sponsors),
            "committee": self.committee,
            "stages": [s.to_dict() for s in self.stages],
            "lastAction": self.last_action,
            "filedDate": self.filed_date,
            "lastActionDate": self.last_action_date or self.filed_date,
            "lastUpdated": self.last_updated,
            "officialUrl": self.official_url,
            "session": self.session,
            "billText": self.bill_text,
            "topics": list(self.topics),
        }
        if self.is_stale:
            d["isStale"] = True
            d["fallbackMessage"] = self.fallback_message
        if self.is_placeholder:
            d["isPlaceholder"] = True
        return d

    @classmethod
    def from_dict(cls, d: dict) -> BillRecord:
        return cls(
            id=d.get("id", ""),
            short_title=d.get("shortTitle", ""),
            full_title=d.get("fullTitle", ""),
            status=BillStatus.coerce(d.get("status")),
            abstract=d.get("abstract", ""),
            sponsors=[Sponsor.from_dict(s) for s in d.get("sponsors", [])],
            co_sponsors=list(d.get("coSponsors", [])),
            committee=d.get("committee", ""),
            stages=[Stage.from_dict(s) for s in d.get("stages", [])],
            last_action=d.get("lastAction", ""),
            filed_date=d.get("filedDate", ""),
            last_action_date=d.get("lastActionDate", ""),
            last_updated=d.get("lastUpdated") or utc_now_iso(),
            official_url=d.get("officialUrl", ""),
            session=d.get("session", ""),
            bill_text=d.get("billText", ""),
            topics=list(d.get("topics", [])),
            is_stale=bool(d.get("isStale", False)),
            fallback_message=d.get("fallbackMessage", ""),
            is_placeholder=bool(d.get("isPlaceholder", False)),
        )

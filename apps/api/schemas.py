from pydantic import BaseModel, ConfigDict
from datetime import date
from typing import Optional, List, Dict, Any

from services.backfill import BackfillReport
from services.day_record_store import ScoreRecord
from services.score_inputs import FamilyScore
from services.training_load import LoadSummary, TrainingLoadPoint


class FamilyScoreResponse(BaseModel):
    family: str
    date: date
    status: str
    score: Optional[float] = None
    band: Optional[str] = None
    completeness: int
    inputs_total: int
    components: Dict[str, Any] = {}

    @classmethod
    def from_result(cls, result: FamilyScore) -> "FamilyScoreResponse":
        return cls(
            family=result.family.value,
            date=result.day,
            status=result.status.value,
            score=round(result.score, 1) if result.score is not None else None,
            band=result.band,
            completeness=result.completeness,
            inputs_total=result.inputs_total,
            components=result.components or {},
        )


class ScoreRecordResponse(BaseModel):
    """All three families for one day."""
    date: date
    recovery: Optional[FamilyScoreResponse] = None
    sleep: Optional[FamilyScoreResponse] = None
    strain: Optional[FamilyScoreResponse] = None

    @classmethod
    def from_record(cls, record: ScoreRecord) -> "ScoreRecordResponse":
        def _family(result: Optional[FamilyScore]) -> Optional[FamilyScoreResponse]:
            return FamilyScoreResponse.from_result(result) if result is not None else None

        return cls(
            date=record.day,
            recovery=_family(record.recovery),
            sleep=_family(record.sleep),
            strain=_family(record.strain),
        )


class TrainingLoadPointResponse(BaseModel):
    date: date
    tss: float
    ctl: float
    atl: float
    tsb: float
    activity_count: int

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_point(cls, point: TrainingLoadPoint) -> "TrainingLoadPointResponse":
        return cls(
            date=point.day,
            tss=round(point.tss, 1),
            ctl=round(point.ctl, 1),
            atl=round(point.atl, 1),
            tsb=round(point.tsb, 1),
            activity_count=point.activity_count,
        )


class TrainingLoadRangeResponse(BaseModel):
    start: date
    end: date
    points: List[TrainingLoadPointResponse]


class TSBZoneResponse(BaseModel):
    zone: str
    label: str
    description: str
    color: str
    is_race_window: bool


class LoadSummaryResponse(BaseModel):
    date: date
    current_atl: float
    current_ctl: float
    current_tsb: float
    atl_trend: str
    ctl_trend: str
    tsb_trend: str
    zone: TSBZoneResponse

    @classmethod
    def from_summary(cls, summary: LoadSummary) -> "LoadSummaryResponse":
        return cls(
            date=summary.day,
            current_atl=summary.current_atl,
            current_ctl=summary.current_ctl,
            current_tsb=summary.current_tsb,
            atl_trend=summary.atl_trend,
            ctl_trend=summary.ctl_trend,
            tsb_trend=summary.tsb_trend,
            zone=TSBZoneResponse(
                zone=summary.zone.zone.value,
                label=summary.zone.label,
                description=summary.zone.description,
                color=summary.zone.color,
                is_race_window=summary.zone.is_race_window,
            ),
        )


class FamilyBackfillResponse(BaseModel):
    throttled: bool
    updated_days: List[date]
    skipped_days: List[date]
    errored_days: List[date]


class BackfillReportResponse(BaseModel):
    window: int
    force: bool
    updated_days: List[date]
    skipped_days: List[date]
    errored_days: List[date]
    load_updated_days: List[date]
    load_error: Optional[str] = None
    families: Dict[str, FamilyBackfillResponse]

    @classmethod
    def from_report(cls, report: BackfillReport) -> "BackfillReportResponse":
        return cls(
            window=report.window,
            force=report.force,
            updated_days=report.updated_days,
            skipped_days=report.skipped_days,
            errored_days=report.errored_days,
            load_updated_days=report.load_updated_days,
            load_error=report.load_error,
            families={
                name: FamilyBackfillResponse(
                    throttled=r.throttled,
                    updated_days=r.updated_days,
                    skipped_days=r.skipped_days,
                    errored_days=r.errored_days,
                )
                for name, r in report.families.items()
            },
        )

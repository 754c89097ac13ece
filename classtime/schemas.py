from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import get_settings


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SlotIn(_CamelModel):
    day: int = Field(ge=1)
    period: int = Field(ge=1)


class ObligationRef(_CamelModel):
    class_id: str = Field(alias="classId", min_length=1)
    subject_id: str = Field(alias="subjectId", min_length=1)
    teacher_id: str = Field(alias="teacherId", min_length=1)


class ObligationIn(ObligationRef):
    weekly_hours_required: int = Field(alias="weeklyHoursRequired", gt=0)
    required_room_type: Optional[str] = Field(default=None, alias="requiredRoomType")
    class_size: int = Field(default=0, alias="classSize", ge=0)


class TeacherAvailabilityIn(_CamelModel):
    teacher_id: str = Field(alias="teacherId", min_length=1)
    available_slots: List[SlotIn] = Field(default_factory=list, alias="availableSlots")


class ClassAvailabilityIn(_CamelModel):
    class_id: str = Field(alias="classId", min_length=1)
    available_slots: List[SlotIn] = Field(default_factory=list, alias="availableSlots")


class RoomIn(_CamelModel):
    id: str = Field(min_length=1)
    capacity: int = Field(default=0, ge=0)
    type: str = "classroom"


class PinnedEntryIn(_CamelModel):
    # index into ``obligations`` or an explicit (class, subject, teacher) reference
    obligation: Union[int, ObligationRef]
    day: int = Field(ge=1)
    period: int = Field(ge=1)
    room_id: Optional[str] = Field(default=None, alias="roomId")


class SoftWeightsIn(_CamelModel):
    # extra keys address rules registered outside the built-in set
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    gap: float = Field(default=1.0, ge=0)
    fatigue: float = Field(default=1.0, ge=0)
    clustering: float = Field(default=1.0, ge=0)
    placement: float = Field(default=0.5, ge=0)
    unplaced: float = Field(default=100.0, ge=0)

    def as_dict(self) -> Dict[str, float]:
        return {k: float(v) for k, v in self.model_dump().items()}


def _default(name: str):
    return lambda: getattr(get_settings(), name)


class ParamsIn(_CamelModel):
    max_iterations: int = Field(default_factory=_default("max_iterations"), alias="maxIterations", gt=0)
    timeout_ms: int = Field(default_factory=_default("timeout_ms"), alias="timeoutMs", gt=0)
    random_seed: Optional[int] = Field(default=None, alias="randomSeed")
    soft_weights: SoftWeightsIn = Field(default_factory=SoftWeightsIn, alias="softWeights")

    days: int = Field(default_factory=_default("days"), ge=1)
    periods_per_day: int = Field(default_factory=_default("periods_per_day"), alias="periodsPerDay", ge=1)

    restarts: int = Field(default_factory=_default("restarts"), ge=1)
    budget_policy: Literal["independent", "split"] = Field(
        default_factory=_default("budget_policy"), alias="budgetPolicy"
    )
    workers: int = Field(default_factory=_default("workers"), ge=1)

    shareable_room_types: List[str] = Field(default_factory=list, alias="shareableRoomTypes")
    max_consecutive: int = Field(default=2, alias="maxConsecutive", ge=1)
    difficult_subjects: List[str] = Field(default_factory=list, alias="difficultSubjects")
    afternoon_from_period: Optional[int] = Field(default=None, alias="afternoonFromPeriod", ge=1)


class GenerationRequest(_CamelModel):
    obligations: List[ObligationIn] = Field(default_factory=list)
    teacher_availability: List[TeacherAvailabilityIn] = Field(default_factory=list, alias="teacherAvailability")
    class_availability: List[ClassAvailabilityIn] = Field(default_factory=list, alias="classAvailability")
    rooms: List[RoomIn] = Field(default_factory=list)
    pinned_entries: List[PinnedEntryIn] = Field(default_factory=list, alias="pinnedEntries")
    class_ids: Optional[List[str]] = Field(default=None, alias="classIds")
    subject_ids: Optional[List[str]] = Field(default=None, alias="subjectIds")
    params: ParamsIn = Field(default_factory=ParamsIn)


class EntryOut(_CamelModel):
    class_id: str = Field(alias="classId")
    subject_id: str = Field(alias="subjectId")
    teacher_id: str = Field(alias="teacherId")
    day: int
    period: int
    room_id: Optional[str] = Field(default=None, alias="roomId")
    pinned: bool = False


class UnplacedOut(_CamelModel):
    class_id: str = Field(alias="classId")
    subject_id: str = Field(alias="subjectId")
    teacher_id: str = Field(alias="teacherId")
    missing_hours: int = Field(alias="missingHours")


class PenaltyOut(_CamelModel):
    weight: float
    count: float
    weighted: float


class GenerationResult(_CamelModel):
    state: Literal["COMPLETE", "PARTIAL", "INFEASIBLE"]
    entries: List[EntryOut] = Field(default_factory=list)
    unplaced_obligation_hours: List[UnplacedOut] = Field(default_factory=list, alias="unplacedObligationHours")
    soft_score: float = Field(alias="softScore")
    generation_time_ms: float = Field(alias="generationTimeMs")
    iterations_used: int = Field(alias="iterationsUsed")
    penalties: Dict[str, PenaltyOut] = Field(default_factory=dict)
    runs: int = 1
    seed: Optional[int] = None

    @field_validator("state", mode="before")
    @classmethod
    def _state_value(cls, v):
        return getattr(v, "value", v)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

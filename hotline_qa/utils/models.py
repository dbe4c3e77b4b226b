"""
Data models for the hotline QA evaluation pipeline.
"""
import math
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Utterance(BaseModel):
    """One speaker turn of a canonical transcript"""
    model_config = ConfigDict(frozen=True)

    speaker: str
    text: str
    beginTime: str
    endTime: str


class CanonicalTranscript(BaseModel):
    """Validated, speaker-tagged, timestamped transcript

    Only produced by utils.transcript.normalise_transcript.
    """
    model_config = ConfigDict(frozen=True)

    summary: str = ""
    transcript: Tuple[Utterance, ...]

    def as_prompt_text(self) -> str:
        """Render utterances the way the scoring prompt quotes evidence"""
        return "\n\n".join(f"{u.beginTime} {u.speaker}: {u.text}" for u in self.transcript)


class CriterionVerdict(BaseModel):
    """Model judgment for a single rubric criterion"""
    score: int = Field(ge=0)
    label: str = ""
    observation: str = ""
    evidence: str = "N/A"

    @field_validator('score', mode='before')
    @classmethod
    def coerce_score(cls, v):
        # Models sometimes return "2" or 2.0
        if isinstance(v, bool):
            raise ValueError("score must be numeric")
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("score must be numeric")
            v = float(v)
        if isinstance(v, float):
            # json.loads accepts Infinity, NaN and 1e999
            if not math.isfinite(v):
                raise ValueError(f"score must be finite, got {v}")
            if v != int(v):
                raise ValueError(f"score must be a whole number, got {v}")
            v = int(v)
        return v

    @field_validator('label', 'observation', mode='before')
    @classmethod
    def default_text(cls, v):
        return "" if v is None else v

    @field_validator('evidence', mode='before')
    @classmethod
    def default_evidence(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "N/A"
        return v


class CategoryScore(BaseModel):
    rawScore: int = 0
    multipliedScore: int = 0
    criteria: Dict[str, CriterionVerdict] = Field(default_factory=dict)


class AggregatedEvaluation(BaseModel):
    """Deterministic roll-up of criterion verdicts into a QA score"""
    categories: Dict[str, CategoryScore]
    totalRawScore: int
    totalMultipliedScore: int
    totalPossibleScore: int
    percentageScore: float
    criteria: str
    processingWarning: Optional[str] = None


class CounselorProfile(BaseModel):
    CounselorId: str
    CounselorName: str
    ProgramType: list = Field(default_factory=list)
    IsActive: bool = True
    CreatedDate: str
    LastUpdated: str
    UpdatedBy: str = "system"


class CategoryScoreColumns(BaseModel):
    RapportSkills: float = 0
    CounselingSkills: float = 0
    OrganizationalSkills: float = 0
    TechnicalSkills: float = 0


class EvaluationRecord(BaseModel):
    """Append-only record of one scored recording"""
    CounselorId: str
    EvaluationId: str
    CounselorName: str
    AudioFileName: str
    EvaluationDate: str
    CategoryScores: CategoryScoreColumns
    TotalScore: float
    PercentageScore: float
    Criteria: str
    S3ResultPath: str

"""
Master Evaluation Form rubric and the deterministic aggregation engine.

aggregate() is pure: the same verdicts always produce the same
AggregatedEvaluation, and absent criteria simply contribute zero.
"""
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from utils.helper import log_json
from utils.models import AggregatedEvaluation, CategoryScore, CriterionVerdict

MULTIPLICATION_FACTOR = 4

# Category -> ordered criteria with their rubric maximum
CATEGORIES: Dict[str, Dict[str, int]] = {
    "RAPPORT SKILLS": {
        "Tone": 1,
        "Professional": 1,
        "Conversational Style": 1,
        "Supportive Initial Statement": 1,
        "Affirmation and Praise": 1,
        "Reflection of Feelings": 2,
        "Explores Problem(s)": 1,
        "Values the Person": 1,
        "Non-Judgmental": 1,
    },
    "COUNSELING SKILLS": {
        "Clarifies Non-Suicidal Safety": 1,
        "Suicide Safety Assessment-SSA Initiation and Completion": 4,
        "Exploration of Buffers": 1,
        "Restates then Collaborates Options": 1,
        "Identifies a Concrete Plan of Safety and Well-being": 2,
        "Appropriate Termination": 1,
    },
    "ORGANIZATIONAL SKILLS": {
        "POP Model - does not rush": 1,
        "POP Model - does not dwell": 1,
    },
    "TECHNICAL SKILLS": {
        "Greeting": 1,
    },
}

# Column names used on the evaluation record
CATEGORY_RECORD_FIELDS = {
    "RAPPORT SKILLS": "RapportSkills",
    "COUNSELING SKILLS": "CounselingSkills",
    "ORGANIZATIONAL SKILLS": "OrganizationalSkills",
    "TECHNICAL SKILLS": "TechnicalSkills",
}

RUBRIC_MAX: Dict[str, int] = {
    name: max_score
    for criteria in CATEGORIES.values()
    for name, max_score in criteria.items()
}

TOTAL_POSSIBLE_SCORE = sum(RUBRIC_MAX.values()) * MULTIPLICATION_FACTOR  # 92

# Names models commonly use instead of the canonical criterion key
CRITERION_ALIASES = {
    "SSA": "Suicide Safety Assessment-SSA Initiation and Completion",
    "Suicide Assessment": "Suicide Safety Assessment-SSA Initiation and Completion",
    "Suicidal Safety Assessment": "Suicide Safety Assessment-SSA Initiation and Completion",
    "Suicidal Safety Assessment-SSA Initiation and Completion": "Suicide Safety Assessment-SSA Initiation and Completion",
    "Suicidal Safety": "Suicide Safety Assessment-SSA Initiation and Completion",
    "Buffers": "Exploration of Buffers",
    "Protective Factors": "Exploration of Buffers",
    "Exploration of Protective Factors": "Exploration of Buffers",
    "Concrete Plan": "Identifies a Concrete Plan of Safety and Well-being",
    "Safety Plan": "Identifies a Concrete Plan of Safety and Well-being",
    "Identifies Concrete Plan": "Identifies a Concrete Plan of Safety and Well-being",
    "Termination": "Appropriate Termination",
    "Follow Up": "Appropriate Termination",
    "POP Model - No Rush": "POP Model - does not rush",
    "POP Model - No Dwell": "POP Model - does not dwell",
    "Conversational": "Conversational Style",
    "Initial Statement": "Supportive Initial Statement",
    "Supportive Statement": "Supportive Initial Statement",
    "Affirmation": "Affirmation and Praise",
    "Reflection": "Reflection of Feelings",
    "Explores Problems": "Explores Problem(s)",
    "Values Person": "Values the Person",
    "Non Judgmental": "Non-Judgmental",
    "Clarifies Safety": "Clarifies Non-Suicidal Safety",
    "Collaborates Options": "Restates then Collaborates Options",
    "Restates Options": "Restates then Collaborates Options",
}

_LOOKUP = {name.lower(): name for name in RUBRIC_MAX}
_LOOKUP.update({alias.lower(): name for alias, name in CRITERION_ALIASES.items()})


class Band(str, Enum):
    MEETS = "Meets Criteria"
    IMPROVEMENT_NEEDED = "Improvement Needed"
    NOT_AT = "Not at Criteria"


def band_for(percentage: float) -> Band:
    if percentage >= 80:
        return Band.MEETS
    if percentage >= 70:
        return Band.IMPROVEMENT_NEEDED
    return Band.NOT_AT


def canonical_criterion(name: str) -> Optional[str]:
    """Map a model-supplied key to its rubric criterion, or None"""
    if not isinstance(name, str):
        return None
    return _LOOKUP.get(name.strip().lower())


def verdicts_from_llm(payload: Mapping[str, Any], job_name: str = "") -> Dict[str, CriterionVerdict]:
    """
    Build canonical verdicts from a parsed model reply.

    Unknown keys are ignored; entries with negative or non-numeric scores
    are treated as absent.
    """
    verdicts: Dict[str, CriterionVerdict] = {}
    for key, value in payload.items():
        name = canonical_criterion(key)
        if name is None:
            continue
        if isinstance(value, Mapping):
            raw = dict(value)
        else:
            raw = {"score": value}
        try:
            verdict = CriterionVerdict.model_validate(raw)
        except PydanticValidationError as e:
            log_json("WARNING", "CRITERION_DROPPED", jobName=job_name, criterion=name,
                     error=str(e.errors()[0].get("msg", "")) if e.errors() else str(e))
            continue
        verdicts[name] = verdict
    return verdicts


def aggregate(verdicts: Mapping[str, CriterionVerdict], job_name: str = "",
              processing_warning: Optional[str] = None) -> AggregatedEvaluation:
    """Roll criterion verdicts up into category and total scores"""
    categories: Dict[str, CategoryScore] = {}
    total_raw = 0
    total_multiplied = 0

    for category, criteria in CATEGORIES.items():
        raw_score = 0
        contributed: Dict[str, CriterionVerdict] = {}
        for name, max_score in criteria.items():
            verdict = verdicts.get(name)
            if verdict is None:
                continue
            if verdict.score > max_score:
                log_json("WARNING", "SCORE_EXCEEDS_RUBRIC_MAX", jobName=job_name,
                         criterion=name, score=verdict.score, rubricMax=max_score)
            raw_score += verdict.score
            contributed[name] = verdict

        multiplied = raw_score * MULTIPLICATION_FACTOR
        categories[category] = CategoryScore(
            rawScore=raw_score,
            multipliedScore=multiplied,
            criteria=contributed,
        )
        total_raw += raw_score
        total_multiplied += multiplied

    percentage = total_multiplied / TOTAL_POSSIBLE_SCORE * 100

    return AggregatedEvaluation(
        categories=categories,
        totalRawScore=total_raw,
        totalMultipliedScore=total_multiplied,
        totalPossibleScore=TOTAL_POSSIBLE_SCORE,
        percentageScore=percentage,
        criteria=band_for(percentage).value,
        processingWarning=processing_warning,
    )


def aggregate_artifact(artifact: Mapping[str, Any], job_name: str = "") -> Tuple[AggregatedEvaluation, bool]:
    """
    Aggregate a scoring artifact as written by the analyze stage.

    Returns (evaluation, degraded). A degraded artifact carries raw_analysis
    instead of criterion verdicts and aggregates as an empty verdict map.
    """
    if "raw_analysis" in artifact:
        log_json("WARNING", "AGGREGATING_DEGRADED_ANALYSIS", jobName=job_name)
        return aggregate({}, job_name,
                         processing_warning="Model reply could not be parsed; scored as empty"), True
    return aggregate(verdicts_from_llm(artifact, job_name), job_name), False


def category_record_scores(evaluation: AggregatedEvaluation) -> Dict[str, int]:
    """Multiplied category scores keyed by evaluation record column"""
    return {
        CATEGORY_RECORD_FIELDS[name]: evaluation.categories[name].multipliedScore
        for name in CATEGORIES
        if name in evaluation.categories
    }

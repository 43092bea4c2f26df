from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

Level = Literal["A1", "A2", "B1", "B2", "C1", "C2"]
LEVELS = get_args(Level)
GradeLetter = Literal["A+", "A", "B+", "B", "C+", "C", "D", "F"]


# ---------- Request ----------
class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')

    role: Literal['user', 'assistant']
    content: str


class RoleplayContext(BaseModel):
    """Scenario framing chosen on the client. Extra keys (id, title, starter, hints) are ignored."""
    model_config = ConfigDict(frozen=True, extra='ignore')

    scenario: str
    character: str
    setting: str


class TurnRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore', populate_by_name=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    language: str = 'Spanish'
    level: Level = 'B1'
    roleplay: Optional[RoleplayContext] = None
    is_first_message: bool = Field(False, alias='isFirstMessage')

    @field_validator('language')
    @classmethod
    def _language_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('language must not be empty')
        return v

    def last_user_message(self) -> Optional[str]:
        """Content of the final message when it was written by the learner."""
        if self.messages and self.messages[-1].role == 'user':
            return self.messages[-1].content
        return None


# ---------- Model output ----------
class TranslationHint(BaseModel):
    model_config = ConfigDict(extra='ignore')

    translation: Optional[str] = None
    hint: Optional[str] = None

    @field_validator('translation', 'hint')
    @classmethod
    def _blank_is_absent(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None


class Mistake(BaseModel):
    model_config = ConfigDict(extra='ignore')

    type: str
    original: str
    correction: str
    explanation: str


class CorrectionAnalysis(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    has_errors: bool = Field(alias='hasErrors')
    corrected: str
    mistakes: List[Mistake] = Field(default_factory=list)
    feedback: str
    improvements: List[str] = Field(default_factory=list)


class GradingResult(CorrectionAnalysis):
    """Full JSON object the grading completion must return."""
    grade: GradeLetter
    score: int = Field(ge=0, le=100)

    def correction(self) -> CorrectionAnalysis:
        return CorrectionAnalysis(
            hasErrors=self.has_errors,
            corrected=self.corrected,
            mistakes=self.mistakes,
            feedback=self.feedback,
            improvements=self.improvements,
        )


class Grade(BaseModel):
    letter: GradeLetter
    score: int = Field(ge=0, le=100)
    feedback: str


# ---------- Response ----------
class TurnResponse(BaseModel):
    message: str
    correction: Optional[CorrectionAnalysis] = None
    grade: Optional[Grade] = None
    points: int = Field(0, ge=0)
    translation: Optional[str] = None
    hint: Optional[str] = None
    usage: Optional[dict] = None

    def to_json(self) -> dict:
        """Wire shape: camelCase keys, absent fields as null."""
        return self.model_dump(by_alias=True)

"""
Session and User Models
=======================

Records the core reads from and writes to external storage.

    - ECGSession: one completed recording with its heart-rate summary
    - UserProfile: the wearer's demographics and risk factors

Missing demographics fall back to fixed defaults (age 30, 170 cm, 70 kg)
so the analysis pipeline never has to special-case an incomplete profile.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


DEFAULT_AGE = 30
DEFAULT_HEIGHT_CM = 170.0
DEFAULT_WEIGHT_KG = 70.0

NORMAL_STATUS = "Normal"


class ECGSession(BaseModel):
    """
    A completed ECG recording.

    Attributes:
        user_id: Owner of the recording
        session_name: Display name
        timestamp: When the recording started
        duration: Recording length in seconds
        samples: First-channel sample series (empty samples removed)
        avg_bpm: Mean of per-beat heart rates
        min_bpm: Lowest per-beat heart rate
        max_bpm: Highest per-beat heart rate
        rhythm: Rhythm label
        status: "Normal" for a normal session, anything else is abnormal
    """

    user_id: str = Field(..., description="Owner of the recording")
    session_name: str = Field(default="", description="Display name")
    timestamp: datetime = Field(..., description="Recording start time")
    duration: float = Field(default=0.0, ge=0.0, description="Length in seconds")
    samples: List[float] = Field(default_factory=list, description="Sample series")
    avg_bpm: float = Field(default=0.0, ge=0.0, description="Average heart rate")
    min_bpm: float = Field(default=0.0, ge=0.0, description="Minimum heart rate")
    max_bpm: float = Field(default=0.0, ge=0.0, description="Maximum heart rate")
    rhythm: str = Field(default="Normal Sinus Rhythm", description="Rhythm label")
    status: str = Field(default=NORMAL_STATUS, description="Session status")

    @property
    def is_normal(self) -> bool:
        return self.status == NORMAL_STATUS

    @property
    def heart_rate_status(self) -> str:
        """Classify the average heart rate."""
        if self.avg_bpm <= 0:
            return "Unknown"
        if self.avg_bpm < 60:
            return "Bradycardia"
        if self.avg_bpm > 100:
            return "Tachycardia"
        return "Normal"


class UserProfile(BaseModel):
    """
    Wearer demographics and known risk factors.

    Attributes:
        user_id: Profile owner
        age: Age in years
        height_cm: Height in centimetres
        weight_kg: Weight in kilograms
        gender: Free-text gender
        activity_level: e.g. "sedentary", "moderate", "active"
        medical_conditions: Named conditions (diabetes, hypertension, ...)
        has_heart_conditions: Pre-existing heart condition flag
    """

    user_id: str = Field(..., description="Profile owner")
    age: Optional[int] = Field(default=None, ge=0, le=130, description="Age in years")
    height_cm: Optional[float] = Field(default=None, gt=0, description="Height in cm")
    weight_kg: Optional[float] = Field(default=None, gt=0, description="Weight in kg")
    gender: Optional[str] = Field(default=None, description="Gender")
    activity_level: Optional[str] = Field(default=None, description="Activity level")
    medical_conditions: List[str] = Field(default_factory=list, description="Conditions")
    has_heart_conditions: bool = Field(default=False, description="Known heart condition")

    @property
    def effective_age(self) -> int:
        return self.age if self.age is not None else DEFAULT_AGE

    @property
    def bmi(self) -> float:
        """Body mass index from height and weight, using defaults when missing."""
        height_m = (self.height_cm or DEFAULT_HEIGHT_CM) / 100.0
        weight = self.weight_kg or DEFAULT_WEIGHT_KG
        return weight / (height_m * height_m)

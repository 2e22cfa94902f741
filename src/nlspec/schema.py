from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel


class IssueDTO(BaseModel):
    section: Optional[str] = None
    kind: str
    message: str
    severity: str
    line: int = 0


class ReportCountsDTO(BaseModel):
    total: int = 0
    errors: int = 0
    warnings: int = 0
    by_family: Dict[str, int] = {}
    by_kind: Dict[str, int] = {}


class ReportDTO(BaseModel):
    document: Optional[str] = None
    clean: bool
    issues: List[IssueDTO] = []
    counts: ReportCountsDTO


class CheckResponseDTO(BaseModel):
    reports: List[ReportDTO] = []
    errors: List[str] = []
    exit_code: int = 0

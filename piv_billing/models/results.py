from dataclasses import dataclass, field


@dataclass
class OperationResult:
    success: bool
    message: str = ""
    processed: int = 0
    accepted: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)
    error_count: int = 0

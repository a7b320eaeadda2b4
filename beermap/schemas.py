from dataclasses import dataclass, field


@dataclass(frozen=True)
class CountEntry:
    key: str
    count: int


TopNResult = tuple[CountEntry, ...]


@dataclass(frozen=True)
class JobOutcome:
    variant: str
    result: TopNResult | None = None
    error: str | None = None
    duration_ms: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class JobResult:
    run_id: int
    run_key: str
    trigger_source: str
    source_path: str
    status: str
    outcomes: list[JobOutcome] = field(default_factory=list)
    inconsistent_variants: list[str] = field(default_factory=list)
    report_path: str | None = None
    reused_existing_run: bool = False

    @property
    def succeeded_variants(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed_variants(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

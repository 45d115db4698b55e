# piv_billing/config.py
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
import configparser


DEFAULT_MONTHLY_RATE = Decimal("37.70")
STANDARD_MONTH_DAYS = 30


@dataclass
class BillingConfig:
    default_monthly_rate: Decimal = DEFAULT_MONTHLY_RATE
    standard_month_days: int = STANDARD_MONTH_DAYS


@dataclass
class ImportConfig:
    max_errors: int = 10
    panel_first_data_row: int = 6
    event_first_data_row: int = 2


@dataclass
class ReportsConfig:
    stale_after_days: int = 90


@dataclass
class DataConfig:
    panels_path: str | None = None
    events_path: str | None = None


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    billing: BillingConfig = field(default_factory=BillingConfig)
    imports: ImportConfig = field(default_factory=ImportConfig)
    reports: ReportsConfig = field(default_factory=ReportsConfig)
    data: DataConfig = field(default_factory=DataConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        read = self.parser.read(self.path, encoding="utf-8")
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _maybe_str(raw: str | None) -> str | None:
            if raw is None:
                return None
            raw = raw.strip()
            return raw or None

        # --- Billing ---
        billing_kwargs = {}
        if "billing" in p:
            billing_sec = p["billing"]
            if "default_monthly_rate" in billing_sec:
                raw_rate = billing_sec["default_monthly_rate"].strip()
                try:
                    rate = Decimal(raw_rate)
                except InvalidOperation:
                    raise ValueError(f"Invalid [billing] default_monthly_rate: {raw_rate!r}")
                if rate <= 0:
                    raise ValueError("[billing] default_monthly_rate must be positive")
                billing_kwargs["default_monthly_rate"] = rate
            if "standard_month_days" in billing_sec:
                days = int(billing_sec["standard_month_days"])
                if days <= 0:
                    raise ValueError("[billing] standard_month_days must be positive")
                billing_kwargs["standard_month_days"] = days
        billing_cfg = BillingConfig(**billing_kwargs)

        # --- Import ---
        import_kwargs = {}
        if "import" in p:
            import_sec = p["import"]
            if "max_errors" in import_sec:
                import_kwargs["max_errors"] = int(import_sec["max_errors"])
            if "panel_first_data_row" in import_sec:
                import_kwargs["panel_first_data_row"] = int(import_sec["panel_first_data_row"])
            if "event_first_data_row" in import_sec:
                import_kwargs["event_first_data_row"] = int(import_sec["event_first_data_row"])
        import_cfg = ImportConfig(**import_kwargs)

        # --- Reports ---
        if "reports" in p:
            reports_sec = p["reports"]
        else:
            reports_sec = {}

        reports_cfg = ReportsConfig(
            stale_after_days=int(reports_sec.get("stale_after_days", 90) or 90),
        )

        # --- Data files ---
        data_kwargs = {}
        if "data" in p:
            data_sec = p["data"]
            if (panels_path := _maybe_str(data_sec.get("panels_path"))) is not None:
                data_kwargs["panels_path"] = panels_path
            if (events_path := _maybe_str(data_sec.get("events_path"))) is not None:
                data_kwargs["events_path"] = events_path
        data_cfg = DataConfig(**data_kwargs)

        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            if "structured_path" in logging_sec:
                logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            billing=billing_cfg,
            imports=import_cfg,
            reports=reports_cfg,
            data=data_cfg,
            logging=logging_cfg,
        )

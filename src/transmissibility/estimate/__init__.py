from .posterior import (  # noqa: F401
    DEFAULT_QUANTILES,
    EstimationConfig,
    RPosterior,
    TimeWindow,
    estimate_window,
    estimate_window_variable_si,
    log_likelihood,
    total_infectiousness,
)
from .windows import REstimates, estimate_r, sliding_windows, weekly_windows  # noqa: F401

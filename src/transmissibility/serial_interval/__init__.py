from .discretise import (  # noqa: F401
    SerialInterval,
    DiscreteGamma,
    ShiftedGamma,
    EmpiricalSerialInterval,
    gamma_shape_scale,
    discrete_gamma_pmf,
)
from .fit import GammaFit, fit_discrete_gamma, discrete_gamma_loglik, lags_from_pairs  # noqa: F401
from .mcmc import SerialIntervalSampler, MetropolisGammaSampler, gelman_rubin  # noqa: F401

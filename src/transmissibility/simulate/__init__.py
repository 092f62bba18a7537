from .trajectories import ProjectionEnsemble, draw_R, project, sample_posterior_r  # noqa: F401
from .project_paths import ProjectionConfig, project_batch  # noqa: F401

"""
SE-Sync constants only.

=============================================================================
CONVENTION QUICK REFERENCE
=============================================================================

POSES:
  n poses in SE(d), d in {2, 3}
  Ambient estimate X = [t | R] with t (d x n) and R = [R_1 ... R_n] (d x dn)

RELAXATION:
  Simplified formulation: Y is (r x dn), rotations only (translations eliminated)
  Explicit formulation:   Y is (r x (n + dn)) = [t | R], translations unconstrained
  Each rotation block Y_i is an element of the Stiefel manifold St(d, r)

MEASUREMENTS:
  Edge (i, j): R_ij, t_ij with concentration kappa (rotation) and precision tau
  (translation); objective sum kappa ||R_j - R_i R_ij||^2 + tau ||t_j - t_i - R_i t_ij||^2
=============================================================================
"""

# =============================================================================
# RIEMANNIAN STAIRCASE DEFAULTS
# =============================================================================

SESYNC_R0_DEFAULT = 5  # Initial level of the staircase
SESYNC_RMAX_DEFAULT = 10  # Maximum level of the staircase

# Minimum eigenvalue computation
SESYNC_MAX_EIG_ITERATIONS_DEFAULT = 10000
SESYNC_NUM_LANCZOS_VECTORS_DEFAULT = 20
SESYNC_MIN_EIG_NUM_TOL_DEFAULT = 1e-5  # Absolute tolerance for "numerically nonnegative"

# Perturbation applied to the first row of Y when seeding the shifted Lanczos run.
# Rows of Y are fixed points of the iteration when the relaxation is not exact.
SESYNC_LANCZOS_INIT_PERTURBATION = 0.03

# Relative tolerance for the largest-magnitude eigenvalue estimate
SESYNC_LM_EIG_TOL = 1e-4

# =============================================================================
# SADDLE ESCAPE
# =============================================================================

# Initial step = ESCAPE_STEP_SCALE * gradient_tolerance / |lambda_min|, halved before
# the first trial. The local second-order model then predicts a gradient norm of
# ~100x the tolerance at the first trial point.
SESYNC_ESCAPE_STEP_SCALE = 2.0 * 100.0
SESYNC_ESCAPE_ALPHA_MIN = 1e-6  # Step-length floor for the backtracking search

# =============================================================================
# RIEMANNIAN TRUST-REGION (TNT) DEFAULTS
# =============================================================================

TNT_GRAD_NORM_TOL_DEFAULT = 1e-2
TNT_REL_FUNC_DECREASE_TOL_DEFAULT = 1e-5
TNT_STEPSIZE_TOL_DEFAULT = 1e-3
TNT_MAX_ITERATIONS_DEFAULT = 1000
TNT_MAX_TCG_ITERATIONS_DEFAULT = 10000

TNT_DELTA0 = 1.0  # Initial trust-region radius
TNT_ETA1 = 0.25  # Steps with rho below this shrink the region (and are rejected)
TNT_ETA2 = 0.75  # Steps with rho above this that hit the boundary expand it
TNT_GAMMA1 = 0.25  # Shrink factor
TNT_GAMMA2 = 2.0  # Expansion factor
TNT_KAPPA_FGR = 0.1  # tCG linear convergence target
TNT_THETA = 0.5  # tCG superlinear convergence target exponent
TNT_MODEL_DECREASE_EPS = 1e-30  # Guard for the rho denominator

# =============================================================================
# PRECONDITIONING
# =============================================================================

# Regularized incomplete Cholesky: S + lambda * I with cond(S + lambda * I) <= this
SESYNC_PRECON_MAX_CONDITION_NUMBER = 1e6
SESYNC_ILU_DROP_TOL = 1e-4
SESYNC_ILU_FILL_FACTOR = 10.0

# =============================================================================
# MISC
# =============================================================================

SESYNC_NUM_THREADS_DEFAULT = 1
SESYNC_CONFIG_KEY = "se_sync"  # Optional top-level key in YAML option presets

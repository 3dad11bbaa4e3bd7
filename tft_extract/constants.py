"""
Physical constants and extraction thresholds shared across the package.

Values match the ones used by the measurement lab's analysis sheets,
so results stay comparable with historical reports (e.g. ε0 is 8.854e-12, not
the full CODATA value).
"""

# ══════════════════════════════════════════════════════════════════════
# Physical Constants
# ══════════════════════════════════════════════════════════════════════

EPSILON_0 = 8.854e-12          # F/m
EPSILON_R_SIO2 = 3.9           # dimensionless
ELEMENTARY_CHARGE = 1.602e-19  # C
THERMAL_VOLTAGE_300K = 0.0259  # kT/q at 300 K, V
LN10_APPROX = 2.3              # ln(10) as used in the SS -> Dit relation

# ══════════════════════════════════════════════════════════════════════
# Unit Conversions
# ══════════════════════════════════════════════════════════════════════

M2_TO_CM2 = 1e4
CM2_TO_M2 = 1e-4
MM_TO_CM = 0.1

# ══════════════════════════════════════════════════════════════════════
# Extraction Thresholds
# ══════════════════════════════════════════════════════════════════════

MIN_CURRENT_A = 1e-12          # floor for |ID| and gm
SUBTHRESHOLD_LOG_WINDOW = (-10.0, -6.0)
IOFF_FLOOR_COUNT = 20          # Ioff = mean of the N smallest |ID|
DEFAULT_VDS_LINEAR = 0.1       # V
DEFAULT_VDS_SATURATION = 20.0  # V
MU0_MAX_CM2 = 200.0            # plausibility ceiling for μ0, cm²/V·s
THETA_MAX = 2.0                # V⁻¹
THETA_FALLBACK = 0.1           # V⁻¹

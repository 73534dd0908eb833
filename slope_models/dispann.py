"""
ANN-based models for earthquake-induced sliding displacement of slopes
[Wang et al. 2023]

all functions operate on broadcast-ready (aligned) numpy arrays of any
number of dimensions; the coefficient arrays are those of a single
model variant, see slope_models.variants
"""
import numpy as np
import scipy.special as sp
import scipy.stats as st

from slope_models.errors import DomainError

PREDICTORS = ("PGA", "SA2s", "Ky", "Ts")

# clamped lnD values closer to zero than this are rejected
LND_ZERO_TOLERANCE = 1e-9


# PREDICTORS
def log_predictors(PGA, SA2s, Ky, Ts):
    """returns the natural logarithm of the four predictors, stacked
    along a new trailing axis of length 4 in the order PGA, SA2s, Ky, Ts

    inputs
    PGA, SA2s, Ky - broadcast-ready arrays of intensity measures [g]
    Ts            - broadcast-ready array of fundamental periods [s]
    """
    x = np.broadcast_arrays(*[np.asarray(v, dtype=float) for v in (PGA, SA2s, Ky, Ts)])
    for name, values in zip(PREDICTORS, x):
        check_positive(name, values)

    return np.log(np.stack(x, axis=-1))


def check_positive(name, values):
    # NaN fails the comparison as well
    n_invalid = np.count_nonzero(~(np.asarray(values) > 0.0))
    if n_invalid > 0:
        raise DomainError(
            f"{name} must be strictly positive, found {n_invalid} invalid value(s)"
        )


# NORMALIZER
def normalize(lnX, X_min, X_max):
    """returns the predictors rescaled to [-1, 1] over the fitted range
    equation 2 in [Wang et al. 2023]

    values outside [X_min, X_max] are extrapolated, not clipped

    inputs
    lnX          - array of log-predictors, trailing axis of length 4
    X_min, X_max - bounds of the fitted log-domain, length 4
    """
    return 2.0 * (lnX - X_min) / (X_max - X_min) - 1.0


# NETWORK
def hidden_layer(X_norm, weight_matrix, bias_vector):
    """returns the activations of the hidden layer
    equation 3 in [Wang et al. 2023]

    the paper writes the activation as 2 / (1 + exp(-2x)) - 1, which is tanh(x)
    """
    return np.tanh(X_norm @ weight_matrix + bias_vector)


def nonzero_displacement(X_norm, weight_matrix, weight_vector, bias_vector, bias_scalar):
    """returns the nonzero displacement [cm]
    equations 3 and 4 in [Wang et al. 2023]

    inputs
    X_norm        - normalized predictors, trailing axis of length 4
    weight_matrix - 4 x H hidden layer weights
    weight_vector - H output weights
    bias_vector   - H hidden layer biases
    bias_scalar   - output bias
    """
    hidden = hidden_layer(X_norm, weight_matrix, bias_vector)
    lnD = hidden @ weight_vector + bias_scalar

    return np.exp(lnD)


# DISPERSION
def sigma_lnD(D_nonzero, c, lnD_bounds):
    """returns the standard deviation of lnD
    equation 8 in [Wang et al. 2023]

    lnD is clamped to lnD_bounds before evaluating the polynomial in 1/lnD

    inputs
    D_nonzero  - array of nonzero displacements [cm]
    c          - polynomial coefficients c0..c3
    lnD_bounds - lower and upper bound of lnD
    """
    check_positive("D_nonzero", D_nonzero)
    lnD = np.clip(np.log(D_nonzero), lnD_bounds[0], lnD_bounds[1])

    n_pole = np.count_nonzero(np.abs(lnD) < LND_ZERO_TOLERANCE)
    if n_pole > 0:
        raise DomainError(
            f"clamped lnD vanishes for {n_pole} value(s); "
            f"lnD bounds {tuple(lnD_bounds)} must not straddle zero"
        )

    return c[0] + c[1] / lnD + c[2] / lnD**2 + c[3] / lnD**3


# ZERO DISPLACEMENT
def zero_probability(PGA, SA2s, Ky, Ts, a, Ts_threshold=0.2):
    """returns the probability of 'zero' (negligible) displacement
    equation 7 in [Wang et al. 2023]

    the first row of coefficients applies to Ts <= Ts_threshold, the second
    row to longer periods; there is no interpolation across the threshold

    inputs
    PGA, SA2s, Ky, Ts - broadcast-ready arrays of the raw predictors
    a                 - 2 x 6 logistic regression coefficients
    """
    PGA, SA2s, Ky, Ts = [np.asarray(v, dtype=float) for v in (PGA, SA2s, Ky, Ts)]
    for name, values in zip(PREDICTORS, (PGA, SA2s, Ky, Ts)):
        check_positive(name, values)

    lnPGA, lnSA2s, lnKy = np.log(PGA), np.log(SA2s), np.log(Ky)

    def logit(a):
        return a[0] + a[1] * lnPGA + a[2] * lnSA2s + a[3] * lnKy + a[4] * Ts + a[5] * lnKy**2

    z = np.where(Ts <= Ts_threshold, logit(a[0]), logit(a[1]))

    return sp.expit(z)


# COMBINATION
def expected_displacement(D_nonzero, P_zero):
    """returns the expected displacement [cm], accounting for the
    probability mass at zero displacement
    equation 6 in [Wang et al. 2023]
    """
    return D_nonzero * (1.0 - P_zero)


def exceedance_probability(d, D_nonzero, sigma, P_zero):
    """returns the probability that the displacement exceeds d [cm]

    zero displacement never exceeds d > 0, the nonzero displacement
    is lognormal with median D_nonzero and log-standard deviation sigma
    """
    check_positive("displacement level", d)
    poe_nonzero = st.norm.sf(np.log(d), loc=np.log(D_nonzero), scale=sigma)

    return (1.0 - P_zero) * poe_nonzero

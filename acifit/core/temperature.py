"""
Temperature responses of photosynthetic parameters.

Kinetic constants (GammaStar, Kc, Ko) follow Arrhenius functions referenced
to 25 °C (Bernacchi et al. 2001). Vcmax and Jmax follow the peaked Arrhenius
function of Medlyn et al. (2002); the peak term of Vcmax is only applied when
a deactivation energy is supplied.

All constant sets are immutable dataclasses so that different curves or
batches can run with different defaults in the same process.
"""

import numpy as np
from typing import Union
from dataclasses import dataclass

IDEAL_GAS_CONSTANT = 8.314  # J / mol / K
ABSOLUTE_ZERO = -273.15  # degrees C
T_REF_C = 25.0
T_REF_K = T_REF_C - ABSOLUTE_ZERO

ArrayLike = Union[float, np.ndarray]


@dataclass(frozen=True)
class TemperatureCoefficients:
    """
    Temperature-correction coefficients for Vcmax and Jmax.

    Attributes:
        EaV: Activation energy of Vcmax (J mol⁻¹)
        EdVC: Deactivation energy of Vcmax (J mol⁻¹); 0 disables the peak
        delsC: Entropy term of Vcmax (J mol⁻¹ K⁻¹)
        EaJ: Activation energy of Jmax (J mol⁻¹)
        EdVJ: Deactivation energy of Jmax (J mol⁻¹)
        delsJ: Entropy term of Jmax (J mol⁻¹ K⁻¹)
    """
    EaV: float = 82620.87
    EdVC: float = 0.0
    delsC: float = 645.1013
    EaJ: float = 39676.89
    EdVJ: float = 200000.0
    delsJ: float = 641.3615


@dataclass(frozen=True)
class KineticConstants:
    """
    Rubisco kinetic constants at 25 °C and their activation energies.

    Attributes:
        GammaStar25: CO2 compensation point without day respiration (µmol mol⁻¹)
        Kc25: Michaelis constant for CO2 (µmol mol⁻¹)
        Ko25: Michaelis constant for O2 (mmol mol⁻¹)
        Oi: Intercellular O2 concentration (mmol mol⁻¹)
        Egamma: Activation energy of GammaStar (J mol⁻¹)
        Ec: Activation energy of Kc (J mol⁻¹)
        Eo: Activation energy of Ko (J mol⁻¹)
    """
    GammaStar25: float = 42.75
    Kc25: float = 404.9
    Ko25: float = 278.4
    Oi: float = 210.0
    Egamma: float = 37830.0
    Ec: float = 79430.0
    Eo: float = 36380.0


DEFAULT_TEMPERATURE_COEFFICIENTS = TemperatureCoefficients()
DEFAULT_KINETIC_CONSTANTS = KineticConstants()


def to_kelvin(temperature_c: ArrayLike) -> ArrayLike:
    return np.asarray(temperature_c, dtype=float) - ABSOLUTE_ZERO


def arrhenius_response(
    activation_energy: float,
    temperature_c: ArrayLike
) -> ArrayLike:
    """
    Arrhenius response normalized to 1 at 25 °C.

    response = exp(Ea * (Tk - 298.15) / (298.15 * R * Tk))

    Args:
        activation_energy: Activation energy (J mol⁻¹)
        temperature_c: Temperature in degrees Celsius

    Returns:
        Dimensionless temperature response factor
    """
    tk = to_kelvin(temperature_c)
    return np.exp(activation_energy * (tk - T_REF_K) / (T_REF_K * IDEAL_GAS_CONSTANT * tk))


def peaked_arrhenius_response(
    activation_energy: float,
    deactivation_energy: float,
    entropy: float,
    temperature_c: ArrayLike
) -> ArrayLike:
    """
    Peaked Arrhenius response normalized to 1 at 25 °C.

    response = arrhenius(Ea, T) * (1 + exp((298.15*S - Hd) / (R*298.15)))
                                / (1 + exp((Tk*S - Hd) / (R*Tk)))

    Args:
        activation_energy: Activation energy (J mol⁻¹)
        deactivation_energy: Deactivation energy (J mol⁻¹)
        entropy: Entropy term (J mol⁻¹ K⁻¹)
        temperature_c: Temperature in degrees Celsius

    Returns:
        Dimensionless temperature response factor
    """
    tk = to_kelvin(temperature_c)
    top = 1.0 + np.exp((T_REF_K * entropy - deactivation_energy) / (IDEAL_GAS_CONSTANT * T_REF_K))
    bot = 1.0 + np.exp((tk * entropy - deactivation_energy) / (IDEAL_GAS_CONSTANT * tk))
    return arrhenius_response(activation_energy, temperature_c) * top / bot


def vcmax_temperature_factor(
    temperature_c: ArrayLike,
    coefficients: TemperatureCoefficients = DEFAULT_TEMPERATURE_COEFFICIENTS
) -> ArrayLike:
    """Vcmax(T) / Vcmax(25 °C)."""
    if coefficients.EdVC > 0:
        return peaked_arrhenius_response(
            coefficients.EaV, coefficients.EdVC, coefficients.delsC, temperature_c
        )
    return arrhenius_response(coefficients.EaV, temperature_c)


def jmax_temperature_factor(
    temperature_c: ArrayLike,
    coefficients: TemperatureCoefficients = DEFAULT_TEMPERATURE_COEFFICIENTS
) -> ArrayLike:
    """Jmax(T) / Jmax(25 °C)."""
    return peaked_arrhenius_response(
        coefficients.EaJ, coefficients.EdVJ, coefficients.delsJ, temperature_c
    )


def gamma_star(
    temperature_c: ArrayLike,
    patm: float = 100.0,
    kinetics: KineticConstants = DEFAULT_KINETIC_CONSTANTS
) -> ArrayLike:
    """
    CO2 compensation point in the absence of day respiration.

    Args:
        temperature_c: Leaf temperature (°C)
        patm: Atmospheric pressure (kPa)
        kinetics: Kinetic constant set

    Returns:
        GammaStar (µmol mol⁻¹)
    """
    value25 = kinetics.GammaStar25 * patm / 100.0
    return value25 * arrhenius_response(kinetics.Egamma, temperature_c)


def michaelis_menten(
    temperature_c: ArrayLike,
    patm: float = 100.0,
    kinetics: KineticConstants = DEFAULT_KINETIC_CONSTANTS
) -> ArrayLike:
    """
    Effective Michaelis-Menten constant of Rubisco, Km = Kc * (1 + O / Ko).

    Args:
        temperature_c: Leaf temperature (°C)
        patm: Atmospheric pressure (kPa)
        kinetics: Kinetic constant set

    Returns:
        Km (µmol mol⁻¹)
    """
    oi = kinetics.Oi * patm / 100.0
    kc = kinetics.Kc25 * arrhenius_response(kinetics.Ec, temperature_c)
    ko = kinetics.Ko25 * arrhenius_response(kinetics.Eo, temperature_c)
    return kc * (1.0 + oi / ko)

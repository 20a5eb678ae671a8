"""
Formulas: Pure physical formula library.

Each function takes explicit numeric inputs and returns a Computation holding
the value, its unit, and the substituted equation used to obtain it, so that
what was computed (and how) stays auditable alongside the number.

Degenerate inputs raise DivideByZero or UndefinedResult instead of returning
inf/NaN.
"""

import math
from dataclasses import dataclass

from errors import DivideByZero, UndefinedResult

LAMINAR_LIMIT = 2300.0

# Standard water density (g/mL) by temperature (°C)
STANDARD_WATER_DENSITIES: dict[int, float] = {
    15: 0.9991,
    20: 0.9982,
    25: 0.9970,
    30: 0.9956,
    35: 0.9940,
}


@dataclass(frozen=True)
class Computation:
    """A computed quantity with the equation that produced it."""
    label: str
    equation: str
    value: float
    unit: str = ""


def _finite(value: float, label: str) -> float:
    if not math.isfinite(value):
        raise UndefinedResult(f"{label} is undefined for the given inputs")
    return value


# =============================================================================
# Mass density
# =============================================================================

def density(secondary_mass: float, primary_mass: float, nominal_volume: float) -> Computation:
    """Mass density ρ = (m₂ - m₁) / V in g/mL."""
    if nominal_volume == 0:
        raise DivideByZero("Nominal volume must be non-zero")
    value = (secondary_mass - primary_mass) / nominal_volume
    return Computation(
        label="Mass density",
        equation=f"ρ = (m₂ - m₁)/V = ({secondary_mass:.3f} - {primary_mass:.3f})/{nominal_volume:g}",
        value=value,
        unit="g/mL",
    )


def specific_weight(density_g_ml: float, gravity: float = 9.81) -> Computation:
    """Specific weight γ = ρg; g/mL times m/s² gives kN/m³."""
    return Computation(
        label="Specific weight",
        equation=f"γ = ρg = {density_g_ml:.4f}×{gravity}",
        value=density_g_ml * gravity,
        unit="kN/m³",
    )


def specific_gravity(density_g_ml: float, reference_density: float = 0.9982) -> Computation:
    """Specific gravity SG = ρ / ρ_water."""
    if reference_density == 0:
        raise DivideByZero("Reference density must be non-zero")
    return Computation(
        label="Specific gravity",
        equation=f"SG = ρ/ρ_w = {density_g_ml:.4f}/{reference_density}",
        value=density_g_ml / reference_density,
    )


def water_density_at(temperature: float) -> float:
    """Polynomial fit of water density (g/mL) against temperature (°C)."""
    a = -0.0000069
    b = 0.0000592
    c = -0.0079
    d = 1.0002
    return a * temperature ** 3 + b * temperature ** 2 + c * temperature + d


def temperature_corrected_density(
    raw_density: float,
    temperature: float,
    reference_density: float = 0.9982,
) -> Computation:
    """Scale a measured density to the 20 °C reference."""
    water = water_density_at(temperature)
    if water == 0:
        raise DivideByZero("Water density fit is zero at this temperature")
    factor = reference_density / water
    return Computation(
        label="Temperature-corrected density",
        equation=f"ρ_c = ρ×{reference_density}/ρ_w(T) = {raw_density:.4f}×{factor:.4f}",
        value=raw_density * factor,
        unit="g/mL",
    )


def density_uncertainty(
    water_mass: float,
    volume: float,
    mass_uncertainty: float = 0.001,
    volume_uncertainty: float = 0.08,
) -> float:
    """First-order propagated uncertainty of ρ = m/V."""
    if volume == 0:
        raise DivideByZero("Volume must be non-zero")
    d_rho_dm = 1 / volume
    d_rho_dv = -water_mass / (volume * volume)
    return math.sqrt((d_rho_dm * mass_uncertainty) ** 2 + (d_rho_dv * volume_uncertainty) ** 2)


def closest_standard_density(temperature: float) -> tuple[int, float]:
    """Nearest tabulated (temperature, density) pair; ties resolve to 20 °C."""
    closest = 20
    smallest = abs(20 - temperature)
    for temp in sorted(STANDARD_WATER_DENSITIES):
        diff = abs(temp - temperature)
        if diff < smallest:
            smallest = diff
            closest = temp
    return closest, STANDARD_WATER_DENSITIES[closest]


def percent_error(measured: float, reference: float) -> float:
    if reference == 0:
        raise DivideByZero("Reference value must be non-zero")
    return abs((measured - reference) / reference * 100)


# =============================================================================
# Pipe flow
# =============================================================================

def velocity_from_flow_rate(flow_rate: float, area: float) -> Computation:
    """Mean velocity V = Q / A."""
    if area == 0:
        raise DivideByZero("Pipe area must be non-zero")
    return Computation(
        label="Calculate flow velocity",
        equation=f"V = Q/A = {flow_rate:.3e}/{area:.3e}",
        value=flow_rate / area,
        unit="m/s",
    )


def pressure_drop(p1: float, p2: float) -> Computation:
    return Computation(
        label="Calculate pressure drop",
        equation=f"ΔP = P₁ - P₂ = {p1:.0f} - {p2:.0f}",
        value=p1 - p2,
        unit="Pa",
    )


def head_loss(delta_p: float, fluid_density: float, gravity: float = 9.81) -> Computation:
    """Minor head loss hₘ = ΔP / (ρg)."""
    if fluid_density * gravity == 0:
        raise DivideByZero("ρg must be non-zero")
    return Computation(
        label="Calculate minor head loss",
        equation=f"hₘ = ΔP/(ρg) = {delta_p:.0f}/({fluid_density:g}×{gravity})",
        value=delta_p / (fluid_density * gravity),
        unit="m",
    )


def loss_coefficient(delta_p: float, fluid_density: float, velocity: float) -> Computation:
    """Loss coefficient K = 2ΔP / (ρV²); undefined for zero velocity."""
    denominator = fluid_density * velocity ** 2
    if denominator == 0:
        raise UndefinedResult("Loss coefficient is undefined for zero velocity or density")
    return Computation(
        label="Calculate loss coefficient",
        equation=f"K = 2ΔP/(ρV²) = 2×{delta_p:.0f}/({fluid_density:g}×{velocity:.2f}²)",
        value=_finite(2 * delta_p / denominator, "Loss coefficient"),
    )


def reynolds_number(fluid_density: float, velocity: float, diameter: float, viscosity: float) -> Computation:
    """Re = ρVD / μ."""
    if viscosity == 0:
        raise DivideByZero("Viscosity must be non-zero")
    return Computation(
        label="Calculate Reynolds number",
        equation=f"Re = ρVD/μ = {fluid_density:g}×{velocity:.2f}×{diameter}/{viscosity}",
        value=fluid_density * velocity * diameter / viscosity,
    )


def friction_factor(
    reynolds: float,
    relative_roughness: float = 0.0,
    max_iter: int = 50,
    tol: float = 1e-12,
) -> Computation:
    """
    Darcy friction factor.

    Laminar closed form 64/Re below Re = 2300; Colebrook-White solved by
    fixed-point iteration from a Haaland starting guess at and above it.
    """
    if reynolds <= 0:
        raise UndefinedResult("Reynolds number must be positive")
    if relative_roughness < 0:
        raise UndefinedResult("Relative roughness must be non-negative")

    if reynolds < LAMINAR_LIMIT:
        return Computation(
            label="Laminar friction factor",
            equation=f"f = 64/Re = 64/{reynolds:.0f}",
            value=64.0 / reynolds,
        )

    inv_sqrt_f = -1.8 * math.log10((relative_roughness / 3.7) ** 1.11 + 6.9 / reynolds)
    f = 1.0 / inv_sqrt_f ** 2
    for _ in range(max_iter):
        rhs = -2.0 * math.log10(relative_roughness / 3.7 + 2.51 / (reynolds * math.sqrt(f)))
        f_new = 1.0 / rhs ** 2
        if abs(f_new - f) < tol:
            f = f_new
            break
        f = f_new

    return Computation(
        label="Colebrook friction factor",
        equation=f"1/√f = -2log₁₀(ε/3.7D + 2.51/(Re√f)), Re = {reynolds:.0f}, ε/D = {relative_roughness:g}",
        value=f,
    )


def equivalent_length(k: float, diameter: float, friction: float) -> Computation:
    """L_eq = KD / f."""
    if friction == 0:
        raise DivideByZero("Friction factor must be non-zero")
    return Computation(
        label="Calculate equivalent length",
        equation=f"L_eq = KD/f = {k:.2f}×{diameter}/{friction}",
        value=k * diameter / friction,
        unit="m",
    )


# =============================================================================
# Falling-ball viscometry
# =============================================================================

def terminal_velocity_stokes(
    ball_diameter: float,
    ball_density: float,
    fluid_density: float,
    viscosity: float,
    gravity: float = 9.81,
) -> Computation:
    """Stokes terminal velocity V = (ρ_b - ρ_f) g d² / (18μ)."""
    if viscosity == 0:
        raise DivideByZero("Viscosity must be non-zero")
    value = (ball_density - fluid_density) * gravity * ball_diameter ** 2 / (18 * viscosity)
    return Computation(
        label="Terminal velocity",
        equation=f"V = (ρ_b - ρ_f)gd²/(18μ) = ({ball_density:g} - {fluid_density:g})×{gravity}×{ball_diameter}²/(18×{viscosity})",
        value=value,
        unit="m/s",
    )


def viscosity_from_terminal_velocity(
    terminal_velocity: float,
    ball_diameter: float,
    ball_density: float,
    fluid_density: float,
    gravity: float = 9.81,
) -> Computation:
    """Inverse of terminal_velocity_stokes: μ = (ρ_b - ρ_f) g d² / (18V)."""
    if terminal_velocity == 0:
        raise DivideByZero("Terminal velocity must be non-zero")
    value = (ball_density - fluid_density) * gravity * ball_diameter ** 2 / (18 * terminal_velocity)
    return Computation(
        label="Dynamic viscosity",
        equation=f"μ = (ρ_b - ρ_f)gd²/(18V) = ({ball_density:g} - {fluid_density:g})×{gravity}×{ball_diameter}²/(18×{terminal_velocity:.4f})",
        value=value,
        unit="Pa·s",
    )


def kinematic_viscosity(dynamic_viscosity: float, fluid_density: float) -> Computation:
    """ν = μ / ρ."""
    if fluid_density == 0:
        raise DivideByZero("Fluid density must be non-zero")
    return Computation(
        label="Kinematic viscosity",
        equation=f"ν = μ/ρ = {dynamic_viscosity:.4f}/{fluid_density:g}",
        value=dynamic_viscosity / fluid_density,
        unit="m²/s",
    )

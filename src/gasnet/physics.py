import numpy as np

# Universal gas constant R (J/(mol*K))
R_CONST = 8.3144626

# Species order used by every vector quantity in the package
SPECIES_NAMES = ['N2', 'O2', 'H2', 'H2O']

# Molar mass (g/mol or kg/kmol)
MOLAR_MASS = {
    'N2': 28.0134,
    'O2': 31.9988,
    'H2': 2.01588,
    'H2O': 18.01528,
}

# Species that can leave the gas phase
CONDENSABLE = ('H2O',)

# =============================================================================
# NIST Shomate Equation Coefficients
# Source: NIST Chemistry WebBook
# Structure: { 'Species': { 'Low': [coeffs...], 'High': [coeffs...], 'T_cut': K } }
# Coeffs format: [A, B, C, D, E, F, G, H]
# =============================================================================

SHOMATE_DB = {
    'N2': {
        'T_cut': 500.0,
        'Low': [28.98641, 1.853978, -9.647459, 16.63537, 0.000117, -8.671914, 226.4168, 0.0],
        'High': [19.50583, 19.88705, -8.598535, 1.369784, 0.527601, -4.935202, 212.3900, 0.0]
    },
    'O2': {
        'T_cut': 700.0,
        'Low': [31.32234, -20.23531, 57.86644, -36.50624, -0.007374, -8.903471, 246.7945, 0.0],
        'High': [30.03235, 8.772972, -3.988133, 0.788313, -0.741599, -11.32468, 236.1663, 0.0]
    },
    'H2': {
        'T_cut': 1000.0,
        'Low': [33.066178, -11.363417, 11.432816, -2.772874, -0.158558, -9.980797, 172.707974, 0.0],
        # NIST 1000-2500K
        'High': [18.563083, 12.257357, -2.859786, 0.268238, 1.977990, -1.147438, 156.288133, 0.0]
    },
    'H2O': {
        'T_cut': 1700.0,
        'Low': [30.09200, 6.832514, 6.793435, -2.534480, 0.082139, -250.8810, 223.3967, -241.8264],
        'High': [41.96426, 8.622053, -1.499780, 0.098119, -11.15764, -272.1797, 219.7809, -241.8264]
    },
}

# Sutherland law constants: (reference value, T_ref [K], S [K])
SUTHERLAND_VISCOSITY = {
    'N2': (1.663e-5, 273.15, 107.0),
    'O2': (1.919e-5, 273.15, 139.0),
    'H2': (8.411e-6, 273.15, 97.0),
    'H2O': (1.12e-5, 350.0, 1064.0),
}

SUTHERLAND_CONDUCTIVITY = {
    'N2': (0.0242, 273.15, 150.0),
    'O2': (0.0244, 273.15, 240.0),
    'H2': (0.1672, 273.15, 120.0),
    'H2O': (0.0181, 300.0, 2200.0),
}

# Antoine coefficients, log10(P/bar) = A - B/(T + C)  (NIST, Bridgeman & Aldrich)
ANTOINE_DB = {
    'H2O': (5.08354, 1663.125, -45.622),
}

# Watson correlation: h_fg = h_fg_ref * ((Tc - T)/(Tc - T_ref))^0.38
WATSON_DB = {
    'H2O': {'h_fg_ref': 2.2564e6, 'T_ref': 373.15, 'T_crit': 647.096},
}


def _shomate_coeffs(species, T):
    """Coefficient matrix (8, len(T)) selected per temperature."""
    data = SHOMATE_DB[species]
    low = np.asarray(data['Low'])[:, None]
    high = np.asarray(data['High'])[:, None]
    return np.where(T[None, :] < data['T_cut'], low, high)


def _calculate_shomate(species, T, prop_type):
    """
    Internal helper: thermodynamic property from the Shomate equation.
    T: temperature (K), scalar or array
    prop_type: 'H' (sensible enthalpy), 'S' (entropy), 'Cp' (heat capacity)
    """
    T_arr = np.atleast_1d(np.asarray(T, dtype=float))
    A, B, C, D, E, F, G, H_const = _shomate_coeffs(species, T_arr)
    t = T_arr / 1000.0

    if prop_type == 'Cp':
        # Cp = A + B*t + C*t^2 + D*t^3 + E/t^2 (J/mol*K)
        val = A + B*t + C*t**2 + D*t**3 + E/(t**2)
    elif prop_type == 'H':
        # H - H(298.15) = A*t + B*t^2/2 + C*t^3/3 + D*t^4/4 - E/t + F - H (kJ/mol)
        val = (A*t + B*(t**2)/2 + C*(t**3)/3 + D*(t**4)/4 - E/t + F - H_const) * 1000.0
    elif prop_type == 'S':
        # S = A*ln(t) + B*t + C*t^2/2 + D*t^3/3 - E/(2*t^2) + G (J/mol*K)
        val = A*np.log(t) + B*t + C*(t**2)/2 + D*(t**3)/3 - E/(2*t**2) + G
    else:
        raise ValueError(f"Unknown Shomate property '{prop_type}'")
    return val if np.ndim(T) else float(val[0])


def calculate_cp(species, T):
    """Molar heat capacity (J/(mol*K))"""
    return _calculate_shomate(species, T, 'Cp')


def calculate_enthalpy(species, T):
    """Molar sensible enthalpy relative to 298.15 K (J/mol)"""
    return _calculate_shomate(species, T, 'H')


def calculate_entropy(species, T):
    """Absolute molar entropy at 1 bar (J/(mol*K))"""
    return _calculate_shomate(species, T, 'S')


def _sutherland(ref, T):
    value_ref, T_ref, S = ref
    T = np.asarray(T, dtype=float)
    return value_ref * (T / T_ref)**1.5 * (T_ref + S) / (T + S)


def calculate_gas_viscosity(species, T):
    """Dynamic viscosity from Sutherland's law (Pa*s)"""
    return _sutherland(SUTHERLAND_VISCOSITY[species], T)


def calculate_thermal_conductivity(species, T):
    """Thermal conductivity from Sutherland's law (W/(m*K))"""
    return _sutherland(SUTHERLAND_CONDUCTIVITY[species], T)


def calculate_log_saturation_pressure(species, T):
    """
    Natural log of the saturation pressure (ln Pa).
    Non-condensable species get a pressure no gas network can reach.
    """
    T = np.asarray(T, dtype=float)
    if species not in ANTOINE_DB:
        return np.full_like(T, np.log(1e12))
    A, B, C = ANTOINE_DB[species]
    log10_bar = A - B / (T + C)
    return log10_bar * np.log(10.0) + np.log(1e5)


def calculate_heat_of_vaporization(species, T):
    """Latent heat (J/kg), zero above the critical point and for non-condensables"""
    T = np.asarray(T, dtype=float)
    if species not in WATSON_DB:
        return np.zeros_like(T)
    data = WATSON_DB[species]
    ratio = np.clip(data['T_crit'] - T, 0.0, None) / (data['T_crit'] - data['T_ref'])
    return data['h_fg_ref'] * ratio**0.38

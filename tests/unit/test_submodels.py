import unittest
import sys
import os
import numpy as np

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

from gasnet.correlations import (choke_limited_drop, friction_pressure_loss, gnielinski_nusselt, ntu_heat_flow,
                                 nusselt_number, sonic_mass_flow)
from gasnet.material import MaterialService
from gasnet.ports import PortConvection
from gasnet.source_terms import CondensationSource, InjectionSource

AIR = np.array([0.767, 0.233, 0.0, 0.0])


class TestPortConvection(unittest.TestCase):

    def setUp(self):
        self.adapter = PortConvection(area=0.01, length=0.1)
        self.x_in = np.array([1.0, 0.0, 0.0, 0.0])
        self.x_out = np.array([0.0, 0.0, 0.0, 1.0])

    def test_zero_flow_is_diffusive(self):
        G = 1e-4
        Phi, mdot_i = self.adapter.fluxes(0.0, 2e4, 1e4, self.x_in, self.x_out, G, np.full(4, G))
        self.assertAlmostEqual(Phi, G * (2e4 - 1e4))
        np.testing.assert_allclose(mdot_i, G * (self.x_in - self.x_out))

    def test_upwind_limits(self):
        """Strong flow carries the upstream state in either direction"""
        G = 1e-6
        G_x = np.full(4, G)
        Phi, mdot_i = self.adapter.fluxes(0.5, 2e4, 1e4, self.x_in, self.x_out, G, G_x)
        self.assertAlmostEqual(Phi / 0.5, 2e4, delta=1e-3)
        np.testing.assert_allclose(mdot_i, 0.5 * self.x_in, atol=1e-9)

        Phi, mdot_i = self.adapter.fluxes(-0.5, 2e4, 1e4, self.x_in, self.x_out, G, G_x)
        self.assertAlmostEqual(Phi / -0.5, 1e4, delta=1e-3)
        np.testing.assert_allclose(mdot_i, -0.5 * self.x_out, atol=1e-9)

    def test_species_flows_sum_to_mass_flow(self):
        G = 1e-3
        for mdot in (-0.02, -1e-4, 0.0, 3e-4, 0.05):
            with self.subTest(mdot=mdot):
                _, mdot_i = self.adapter.fluxes(mdot, 0.0, 0.0, AIR, self.x_out, G, np.full(4, G))
                self.assertAlmostEqual(np.sum(mdot_i), mdot, places=12)

    def test_conductance_floor(self):
        m = MaterialService()
        G, G_x = self.adapter.conductance(m, 300.0, AIR)
        self.assertGreater(G, 0.0)
        np.testing.assert_allclose(G_x, G)


class TestCorrelations(unittest.TestCase):

    def test_friction_laminar_and_odd(self):
        rho, mu, L, A, D = 1.2, 1.8e-5, 1.0, 1e-4, 0.0113
        mdot = 1e-5  # Re ~ 60
        dp = friction_pressure_loss(mdot, rho, mu, L, A, D, 1e-5)
        self.assertAlmostEqual(dp, 64 * mu * L * mdot / (2 * rho * D**2 * A))
        self.assertAlmostEqual(friction_pressure_loss(-mdot, rho, mu, L, A, D, 1e-5), -dp)

    def test_friction_turbulent_monotonic(self):
        flows = np.linspace(0.0, 0.05, 200)
        dp = [friction_pressure_loss(m, 1.2, 1.8e-5, 2.0, 1e-3, 0.0357, 1e-5) for m in flows]
        self.assertTrue(np.all(np.diff(dp) > 0))

    def test_nusselt_limits(self):
        self.assertEqual(nusselt_number(500.0, 0.7, 0.0, 0.01), 3.66)
        self.assertGreater(nusselt_number(2e4, 0.7, 0.0, 0.01), 40.0)

    def test_ntu_heat_flow_bounded(self):
        cp, hA, dT = 1005.0, 50.0, 40.0
        # Strong flow: approaches hA*dT
        self.assertAlmostEqual(ntu_heat_flow(10.0, cp, hA, dT) / (hA * dT), 1.0, delta=0.01)
        # Weak flow: bounded by the capacity rate
        Q = ntu_heat_flow(1e-4, cp, hA, dT)
        self.assertLessEqual(Q, 1e-4 * cp * dT * (1 + 1e-9))
        self.assertLess(abs(ntu_heat_flow(0.0, cp, hA, dT)), 1e-3)

    def test_sonic_mass_flow_air(self):
        m = MaterialService()
        T, p, A = 293.15, 3e5, 1e-4
        mdot = sonic_mass_flow(A, p, T, m.gas_constant(AIR), m.gamma(T, AIR))
        # rho* a* A with the isentropic throat relations
        self.assertAlmostEqual(mdot, 0.0404 * A * p / np.sqrt(T), delta=0.01 * mdot)

    def test_choke_limited_drop(self):
        self.assertEqual(choke_limited_drop(100.0, 1e4, 2e4, 0.02), 100.0)
        self.assertEqual(choke_limited_drop(5e4, 1e4, 2e4, 0.02), 1e4)
        self.assertEqual(choke_limited_drop(-5e4, 1e4, 2e4, 0.02), -2e4)

    def test_degenerate_properties_stay_finite(self):
        """Trial states with gamma = 1 or a negative Prandtl number give finite real values"""
        mdot = sonic_mass_flow(1e-4, 1e5, 300.0, 287.0, 1.0)
        self.assertTrue(np.isfinite(mdot))
        self.assertGreater(mdot, 0.0)
        Nu = gnielinski_nusselt(1e4, -0.5, 0.03)
        self.assertIsInstance(Nu, float)
        self.assertTrue(np.isfinite(Nu))


class TestCondensation(unittest.TestCase):

    def setUp(self):
        self.m = MaterialService()
        self.cond = CondensationSource(time_constant=1e-2)

    def humid(self, y_h2o):
        y = np.array([0.79 * (1 - y_h2o), 0.21 * (1 - y_h2o), 0.0, y_h2o])
        return self.m.mass_fractions(y)

    def test_zero_below_saturation(self):
        # p_H2O = 2 kPa < p_sat(300 K) ~ 3.5 kPa
        x = self.humid(0.02)
        rates = self.cond.rates(self.m, 1e5, 300.0, x, mass=1.0)
        np.testing.assert_array_equal(rates, 0.0)
        species, energy = self.cond.get_sources(self.m, 1e5, 300.0, x, 1.0, 0.0)
        np.testing.assert_array_equal(species, 0.0)
        self.assertEqual(energy, 0.0)

    def test_saturation_fraction_matches_partial_pressure(self):
        T, p = 300.0, 1e5
        x = self.humid(0.05)
        x_sat = CondensationSource.saturation_fractions(self.m, p, T, x)
        x_at_sat = x.copy()
        x_at_sat[3] = x_sat[3]
        x_at_sat[:3] *= (1 - x_sat[3]) / np.sum(x[:3])
        p_h2o = self.m.partial_pressures(p, x_at_sat)[3]
        self.assertAlmostEqual(p_h2o, self.m.saturation_pressure(T)[3], delta=1e-6 * p)
        np.testing.assert_array_equal(x_sat[:3], 1.0)

    def test_positive_above_saturation_and_scales_with_tau(self):
        x = self.humid(0.05)
        rates = self.cond.rates(self.m, 1e5, 300.0, x, mass=1.0)
        self.assertGreater(rates[3], 0.0)
        np.testing.assert_array_equal(rates[:3], 0.0)
        faster = CondensationSource(time_constant=5e-3).rates(self.m, 1e5, 300.0, x, mass=1.0)
        self.assertAlmostEqual(faster[3], 2.0 * rates[3])

    def test_condensation_heats_the_gas(self):
        """Removing liquid enthalpy h - h_fg leaves latent heat in the gas"""
        x = self.humid(0.05)
        species, energy = self.cond.get_sources(self.m, 1e5, 300.0, x, 1.0, 0.0)
        h = self.m.species_enthalpy(300.0)
        self.assertGreater(energy - np.dot(species, h), 0.0)


class TestInjection(unittest.TestCase):

    def test_heat_by_flow_sign(self):
        m = MaterialService()
        inj = InjectionSource(flow=[0.0, 0.0, 1e-3, -2e-3], temperature=350.0)
        heat = inj.injection_heat(m, inj.species_flow(0.0), 350.0, 300.0)
        expected = 1e-3 * m.species_enthalpy(350.0)[2] - 2e-3 * m.species_enthalpy(300.0)[3]
        self.assertAlmostEqual(heat, expected)

    def test_liquid_injection_carries_latent_heat(self):
        m = MaterialService()
        mdot = np.array([0.0, 0.0, 0.0, 1e-3])
        vapour = InjectionSource(mdot, 320.0).injection_heat(m, mdot, 320.0, 300.0)
        liquid = InjectionSource(mdot, 320.0, liquid=[False, False, False, True]).injection_heat(m, mdot, 320.0, 300.0)
        self.assertAlmostEqual(vapour - liquid, 1e-3 * m.heat_of_vaporization(320.0)[3])

    def test_signal_flow(self):
        inj = InjectionSource(lambda t: [0.0, 0.0, 0.0, 1e-3 * t], 300.0)
        np.testing.assert_allclose(inj.species_flow(2.0), [0.0, 0.0, 0.0, 2e-3])


if __name__ == '__main__':
    unittest.main()

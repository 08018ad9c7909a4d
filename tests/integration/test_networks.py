import unittest
import json
import os
import sys
import tempfile
import numpy as np
import logging

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

from gasnet.boundaries import AngularVelocitySource, Cap, MechanicalReference, Reservoir
from gasnet.constants import PhysicalConstants
from gasnet.compressor import BasicCompressor
from gasnet.exceptions import TopologyError
from gasnet.flow_elements import FlowResistance, LocalRestriction
from gasnet.integrator import Integrator, solve_steady_state
from gasnet.network import Network
from gasnet.network_loader import build_network, load_network
from gasnet.sensors import MassFlowSensor, SpeciesFracs, ThermoPropSensor, VolumetricFlowSensor
from gasnet.sources import MassFlowSource, PressureSource
from gasnet.volumes import Pipe

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


class TestSteadyNetworks(unittest.TestCase):

    def test_cap_feeds_closed_pipe(self):
        """A capped, otherwise closed network carries no flow and the sensor reads the cap state"""
        net = Network()
        cap = net.add(Cap('cap', p=101325.0, T=293.15, composition=[1.0, 0.0, 0.0, 0.0]))
        sensor = net.add(MassFlowSensor('sensor'))
        net.add(Pipe('pipe', p=101325.0, T=293.15, composition=[1.0, 0.0, 0.0, 0.0]))
        net.connect(cap['A'], sensor['A'])
        net.connect(sensor['B'], 'pipe.A')
        system = net.assemble()

        y = Integrator(system).initialize()
        out = system.outputs('sensor', 0.0, y)
        self.assertAlmostEqual(out['mdot'], 0.0, places=9)
        self.assertAlmostEqual(out['p'], 101325.0, delta=1e-3)
        self.assertAlmostEqual(out['T'], 293.15, delta=1e-6)
        state = system.node_state(sensor['B'], y)
        np.testing.assert_allclose(state.x, [1.0, 0.0, 0.0, 0.0], atol=1e-9)

    def test_flow_resistance_nominal_point(self):
        net = Network()
        net.add(Reservoir('inlet', p=101325.0, area=0.05))
        net.add(MassFlowSource('pump', mass_flow=0.1))
        net.add(FlowResistance('filter', nominal_pressure_drop=1000.0, nominal_mass_flow=0.1))
        net.add(Reservoir('outlet', p=101325.0, area=0.05))
        net.connect('inlet.A', 'pump.A')
        net.connect('pump.B', 'filter.A')
        net.connect('filter.B', 'outlet.A')
        system = net.assemble()

        y = solve_steady_state(system)
        out = system.outputs('filter', 0.0, y)
        self.assertAlmostEqual(out['mdot'], 0.1, places=8)
        self.assertAlmostEqual(out['dp'], 1000.0, delta=10.0)
        # The pump delivers the pressure rise
        pump = system.outputs('pump', 0.0, y)
        self.assertAlmostEqual(-pump['dp'], out['dp'], delta=1e-2)
        # Adiabatic elements keep the temperature (up to kinetic energy)
        outlet_state = system.node_state(net.component('outlet')['A'], y)
        self.assertAlmostEqual(outlet_state.T, 293.15, delta=0.5)

    def test_restriction_chokes(self):
        """Mass flow rises monotonically as the back pressure drops and saturates at the sonic limit"""
        flows, limits = [], []
        y0 = None
        for p_out in (2.5e5, 2.0e5, 1.5e5, 1.0e5, 5.0e4, 1.0e4):
            with self.subTest(p_out=p_out):
                net = Network()
                net.add(Reservoir('tank', p=3.0e5))
                net.add(LocalRestriction('orifice', restriction_area=1e-4, port_area=0.01))
                net.add(Reservoir('sink', p=p_out))
                net.connect('tank.A', 'orifice.A')
                net.connect('orifice.B', 'sink.A')
                system = net.assemble()
                y0 = solve_steady_state(system, y0=y0)
                out = system.outputs('orifice', 0.0, y0)
                logger.info(f"p_out={p_out:.3g} Pa: mdot={out['mdot']:.5f} kg/s, choke={out['choke_fraction']:.3f}")
                self.assertLessEqual(out['mdot'], out['sonic_limit'] * (1.0 + 1e-6))
                flows.append(out['mdot'])
                limits.append(out['sonic_limit'])

        self.assertTrue(np.all(np.diff(flows) > -1e-9))
        self.assertLess(flows[0], 0.98 * limits[0])
        self.assertAlmostEqual(flows[-1] / limits[-1], 1.0, delta=1e-3)

    def test_pipe_steady_flow(self):
        net = Network()
        net.add(Reservoir('high', p=100010.0))
        pipe = net.add(Pipe('pipe', length=1.0, area=1e-4))
        net.add(Reservoir('low', p=100000.0))
        net.connect('high.A', pipe['A'])
        net.connect(pipe['B'], 'low.A')
        system = net.assemble()

        y = solve_steady_state(system)
        out = system.outputs('pipe', 0.0, y)
        self.assertGreater(out['mdot_A'], 0.0)
        self.assertAlmostEqual(out['mdot_A'], -out['mdot_B'], places=8)
        self.assertTrue(100000.0 < out['p'] < 100010.0)
        f, _ = system.evaluate(0.0, y)
        np.testing.assert_allclose(f / system.state_scales, 0.0, atol=1e-7)

    def test_pipe_line_carries_uniform_flow(self):
        net = Network()
        net.add(Reservoir('high', p=100030.0))
        segments = net.add_pipe_line('line', length=3.0, n_segments=3, area=1e-4)
        net.add(Reservoir('low', p=100000.0))
        net.connect('high.A', segments[0]['A'])
        net.connect(segments[-1]['B'], 'low.A')
        system = net.assemble()

        y = solve_steady_state(system)
        flows = [system.outputs(s.name, 0.0, y)['mdot_A'] for s in segments]
        pressures = [system.outputs(s.name, 0.0, y)['p'] for s in segments]
        np.testing.assert_allclose(flows, flows[0], rtol=1e-5)
        self.assertTrue(np.all(np.diff(pressures) < 0))

    def test_compressor_operating_point(self):
        net = Network()
        net.add(Reservoir('ambient', p=1.0e5, area=0.05))
        comp = net.add(BasicCompressor('comp', rated_pressure_ratio=2.0, map_coefficients=(1.0, 0.5, 2.0),
                                       rated_speed=1.0e4))
        net.add(Reservoir('manifold', p=1.5e5, area=0.05))
        net.add(AngularVelocitySource('motor', speed=1.0e4))
        net.add(MechanicalReference('ground', domain='rotational'))
        net.connect('ambient.A', 'comp.A')
        net.connect('comp.B', 'manifold.A')
        net.connect('motor.R', 'comp.R')
        net.connect('motor.C', 'comp.C', 'ground.R')
        system = net.assemble()

        y = solve_steady_state(system)
        out = system.outputs('comp', 0.0, y)
        self.assertAlmostEqual(out['pressure_ratio'], 1.5, places=6)
        psi = out['corrected_flow'] / out['corrected_speed']
        self.assertAlmostEqual(psi, 1.4534, delta=2e-3)

        # Polytropic efficiency below one heats beyond the isentropic outlet
        m = comp.material
        inlet = system.node_state(comp['A'], y)
        outlet = system.node_state(comp['B'], y)
        gamma = m.gamma(inlet.T, inlet.x)
        T_isentropic = inlet.T * 1.5**((gamma - 1.0) / gamma)
        self.assertGreater(outlet.T, T_isentropic)

        # Shaft balance: torque * speed * eta_m is the gas power
        self.assertAlmostEqual(out['torque'] * out['speed'] * comp.eta_m / out['power'], 1.0, places=6)
        self.assertGreater(out['power'], 0.0)

    def test_commanded_resistance(self):
        """Half-open command doubles the loss at the nominal flow"""
        net = Network()
        net.add(Reservoir('inlet', p=101325.0, area=0.05))
        net.add(MassFlowSource('pump', mass_flow=0.1))
        net.add(FlowResistance('valve', nominal_pressure_drop=1000.0, nominal_mass_flow=0.1, command=0.5))
        net.add(Reservoir('outlet', p=101325.0, area=0.05))
        net.connect('inlet.A', 'pump.A')
        net.connect('pump.B', 'valve.A')
        net.connect('valve.B', 'outlet.A')
        system = net.assemble()

        y = solve_steady_state(system)
        self.assertAlmostEqual(system.outputs('valve', 0.0, y)['dp'], 2000.0, delta=1e-2)

    def test_isentropic_pressure_source(self):
        """An isentropic source lifts the pressure at constant entropy and does work on the gas"""
        results = {}
        for power in ('isentropic', 'none'):
            with self.subTest(power=power):
                net = Network()
                net.add(Reservoir('inlet', p=1.0e5))
                src = net.add(PressureSource('fan', pressure_difference=2.0e4, power=power))
                net.add(FlowResistance('duct', nominal_pressure_drop=2.0e4, nominal_mass_flow=0.1))
                net.add(Reservoir('outlet', p=1.0e5))
                net.connect('inlet.A', 'fan.A')
                net.connect('fan.B', 'duct.A')
                net.connect('duct.B', 'outlet.A')
                system = net.assemble()

                y = solve_steady_state(system)
                out = system.outputs('fan', 0.0, y)
                a = system.node_state(src['A'], y)
                b = system.node_state(src['B'], y)
                results[power] = (out, a, b, system.material)
                self.assertAlmostEqual(out['mdot'], 0.1, places=6)
                self.assertAlmostEqual(out['dp'], -2.0e4, delta=1e-2)

        out, a, b, m = results['isentropic']
        R = m.gas_constant(a.x)
        self.assertLess(abs(m.entropy(b.T, b.p, b.x) - m.entropy(a.T, a.p, a.x)) / R, 1e-4)
        self.assertGreater(out['power'], 0.0)
        gamma = m.gamma(a.T, a.x)
        self.assertGreater(b.T, a.T)
        self.assertAlmostEqual(b.T, a.T * 1.2**((gamma - 1.0) / gamma), delta=1.0)

        out, a, b, m = results['none']
        self.assertEqual(out['power'], 0.0)
        self.assertAlmostEqual(b.T, a.T, delta=0.5)

    def test_sensor_chain_outputs(self):
        x_in = np.array([0.75, 0.2, 0.05, 0.0])
        net = Network()
        net.add(Reservoir('inlet', composition=x_in))
        net.add(MassFlowSource('pump', mass_flow=0.01))
        net.add(VolumetricFlowSensor('volume_flow', reference='standard'))
        net.add(ThermoPropSensor('props'))
        net.add(SpeciesFracs('fractions'))
        net.add(Reservoir('outlet'))
        net.connect('inlet.A', 'pump.A')
        net.connect('pump.B', 'volume_flow.A')
        net.connect('volume_flow.B', 'props.A')
        net.connect('props.B', 'fractions.A')
        net.connect('fractions.B', 'outlet.A')
        system = net.assemble()
        m = system.material

        y = solve_steady_state(system)
        rho_std = m.density(PhysicalConstants.STANDARD_PRESSURE, PhysicalConstants.STANDARD_TEMPERATURE, x_in)
        vol = system.outputs('volume_flow', 0.0, y)
        self.assertAlmostEqual(vol['volumetric_flow'] / (0.01 / rho_std), 1.0, delta=1e-6)

        fracs = system.outputs('fractions', 0.0, y)
        np.testing.assert_allclose(fracs['x'], x_in, atol=1e-6)
        np.testing.assert_allclose(fracs['y'], m.mole_fractions(fracs['x']), rtol=1e-12)

        props = system.outputs('props', 0.0, y)
        self.assertAlmostEqual(props['density'] * m.gas_constant(x_in) * props['T'] / props['p'], 1.0, delta=1e-6)
        self.assertAlmostEqual(props['h'], m.enthalpy(PhysicalConstants.DEFAULT_TEMPERATURE, x_in), delta=5.0)

    def test_flow_reversal_through_pipe(self):
        """Flow from B to A carries the B-side reservoir composition into reservoir a"""
        x_b = np.array([0.7, 0.2, 0.1, 0.0])
        net = Network()
        net.add(Reservoir('a', p=1.0e5))
        pipe = net.add(Pipe('pipe', length=1.0, area=1e-4))
        net.add(Reservoir('b', p=100010.0, composition=x_b))
        net.connect('a.A', pipe['A'])
        net.connect(pipe['B'], 'b.A')
        system = net.assemble()

        y = solve_steady_state(system)
        out = system.outputs('pipe', 0.0, y)
        self.assertLess(out['mdot_A'], 0.0)
        self.assertGreater(out['mdot_B'], 0.0)
        np.testing.assert_allclose(out['x'], x_b, atol=1e-6)
        res = system.outputs('a', 0.0, y)
        self.assertGreater(res['mdot'], 0.0)
        np.testing.assert_allclose(res['mdot_i'], res['mdot'] * x_b, rtol=1e-3, atol=1e-12)

    def test_total_enthalpy_across_restriction_and_sensor(self):
        net = Network()
        net.add(Reservoir('tank', p=3.0e5, T=350.0))
        orifice = net.add(LocalRestriction('orifice', restriction_area=1e-4, port_area=0.01))
        sensor = net.add(MassFlowSensor('sensor'))
        net.add(Reservoir('sink', p=2.5e5))
        net.connect('tank.A', 'orifice.A')
        net.connect('orifice.B', 'sensor.A')
        net.connect('sensor.B', 'sink.A')
        system = net.assemble()
        m = system.material

        y = solve_steady_state(system)
        mdot = system.outputs('orifice', 0.0, y)['mdot']
        self.assertGreater(mdot, 0.0)
        h_A = orifice.total_enthalpy(system.node_state(orifice['A'], y), mdot)
        h_B = orifice.total_enthalpy(system.node_state(orifice['B'], y), mdot)
        self.assertAlmostEqual(h_A, h_B, delta=1e-2)

        a, b = system.node_state(sensor['A'], y), system.node_state(sensor['B'], y)
        np.testing.assert_allclose(a.to_array(), b.to_array(), rtol=1e-7, atol=1e-7)
        out = system.outputs('sensor', 0.0, y)
        h_tank = m.enthalpy(350.0, a.x)
        self.assertAlmostEqual(out['Phi'] / (mdot * h_tank), 1.0, delta=1e-3)

    def test_cap_on_sensor(self):
        """A cap wired straight to a sensor sets its state and blocks the flow"""
        net = Network()
        cap = net.add(Cap('cap', p=1.2e5, T=310.0, composition=[1.0, 0.0, 0.0, 0.0]))
        sensor = net.add(MassFlowSensor('sensor'))
        net.connect(cap['A'], sensor['A'])
        system = net.assemble()

        y = solve_steady_state(system)
        out = system.outputs('sensor', 0.0, y)
        self.assertAlmostEqual(out['mdot'], 0.0, places=9)
        self.assertAlmostEqual(out['p'], 1.2e5, delta=1e-3)
        self.assertAlmostEqual(out['T'], 310.0, delta=1e-6)
        np.testing.assert_allclose(system.node_state(sensor['B'], y).x, [1.0, 0.0, 0.0, 0.0], atol=1e-9)

    def test_flow_through_cap_is_reported(self):
        net = Network()
        net.add(Cap('cap', p=1.1e5))
        net.add(LocalRestriction('orifice', restriction_area=1e-4, port_area=0.01))
        net.add(Reservoir('sink', p=1.0e5))
        net.connect('cap.A', 'orifice.A')
        net.connect('orifice.B', 'sink.A')
        system = net.assemble()

        with self.assertLogs('gasnet.network', level='WARNING') as logs:
            y = solve_steady_state(system)
        self.assertTrue(any("flows through a cap" in line for line in logs.output))
        self.assertLess(system.outputs('cap', 0.0, y)['mdot'], 0.0)


class TestNetworkLoader(unittest.TestCase):

    def setUp(self):
        self.config = {
            "components": [
                {"type": "Reservoir", "name": "inlet", "params": {"p": 101325.0}},
                {"type": "MassFlowSource", "name": "pump", "params": {"mass_flow": 0.02}},
                {"type": "LocalRestriction", "name": "valve", "params": {"restriction_area": 2e-4}},
                {"type": "Reservoir", "name": "outlet", "params": {"p": 101325.0}},
            ],
            "pipe_lines": [
                {"name": "duct", "length": 2.0, "n_segments": 2, "params": {"area": 1e-3}},
            ],
            "connections": [
                ["inlet.A", "pump.A"],
                ["pump.B", "duct_0.A"],
                ["duct_1.B", "valve.A"],
                ["valve.B", "outlet.A"],
            ],
        }

    def test_build_from_dict(self):
        net = build_network(self.config)
        self.assertEqual(list(net.components), ['inlet', 'pump', 'valve', 'outlet', 'duct_0', 'duct_1'])
        system = net.assemble()
        y = solve_steady_state(system)
        self.assertAlmostEqual(system.outputs('valve', 0.0, y)['mdot'], 0.02, places=7)

    def test_load_from_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'network.json')
            with open(path, 'w') as f:
                json.dump(self.config, f)
            net = load_network(path)
        self.assertEqual(net.component('valve').params['restriction_area'], 2e-4)

    def test_unknown_type(self):
        self.config["components"].append({"type": "Turbine", "name": "t1"})
        with self.assertRaisesRegex(TopologyError, "Unknown component type 'Turbine'"):
            build_network(self.config)


if __name__ == '__main__':
    unittest.main()

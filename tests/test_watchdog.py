import pytest
import numpy as np
import numpy.testing as npt
import pysand
from pysand.common.watchdog import WATCHDOG, STRETCH, WATCHDOG_RESTART, STRETCH_RESTART
from toy_problems import ToyLP, SingularProblem, toy_state


class TestToyProblem:
    @pytest.mark.parametrize("n", [1, 4])
    def test_converges_to_central_path(self, n):
        problem = ToyLP(n=n)
        driver = pysand.WatchdogDriver(problem, verbosity=0)
        state = driver.run()
        assert driver.converged
        assert driver.barrier == 5e-4
        assert driver.iteration < driver.max_iterations

        sigma = problem.central_path(5e-4)
        npt.assert_allclose(state["unfiltered_density"], sigma, rtol=0.05)
        npt.assert_allclose(state["density"], state["displacement"], atol=1e-5)
        npt.assert_allclose(state["displacement_multiplier"], -1.0, atol=1e-4)
        npt.assert_allclose(state["unfiltered_density_multiplier"], 1.0, atol=1e-4)
        assert state.is_positive(pysand.SLACK_BLOCKS)
        assert state.is_positive(pysand.SLACK_MULTIPLIER_BLOCKS)

    def test_history(self):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0)
        driver.run()
        assert len(driver.history) > 0
        for key in ["iteration", "barrier", "merit", "objective", "kkt_norm", "penalty_multiplier", "branch"]:
            assert key in driver.history[0]
        assert driver.history[-1]["iteration"] == driver.iteration
        npt.assert_allclose(driver.history[0]["barrier"], 25.0)

        barriers = [h["barrier"] for h in driver.history]
        assert np.all(np.diff(barriers) <= 0)
        penalties = [h["penalty_multiplier"] for h in driver.history]
        assert np.all(np.diff(penalties) >= 0)

    def test_iteration_accounting(self):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0)
        driver.run()
        iterations = [0] + [h["iteration"] for h in driver.history]
        increments = {WATCHDOG: range(1, 9), STRETCH: [9], WATCHDOG_RESTART: [9], STRETCH_RESTART: [10]}
        for h, inc in zip(driver.history, np.diff(iterations)):
            assert inc in increments[h["branch"]]

    def test_every_barrier_visited(self):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0)
        driver.run()
        visited = sorted(set(h["barrier"] for h in driver.history), reverse=True)
        expected = [25.0]
        while not driver.schedule.at_floor(expected[-1]):
            expected.append(driver.schedule.update(expected[-1]))
        npt.assert_allclose(visited, expected)

    def test_callbacks(self):
        accepted = []
        final = []

        def callback(state, iteration):
            accepted.append((state.copy(), iteration))

        driver = pysand.WatchdogDriver(ToyLP(), callback=callback, final_callback=final.append, verbosity=0)
        state = driver.run()
        assert len(accepted) == len(driver.history)
        assert [it for _, it in accepted] == [h["iteration"] for h in driver.history]
        for s, _ in accepted:
            assert s.is_positive(pysand.SLACK_BLOCKS + pysand.SLACK_MULTIPLIER_BLOCKS)
        assert len(final) == 1
        assert final[0] is state

    def test_initial_state_unchanged(self):
        problem = ToyLP()
        x0 = problem.initial_state()
        v0 = x0.values.copy()
        pysand.WatchdogDriver(problem, verbosity=0).run(x0)
        npt.assert_equal(x0.values, v0)

    def test_iteration_budget(self):
        final = []
        driver = pysand.WatchdogDriver(ToyLP(), max_iterations=3, final_callback=final.append, verbosity=0)
        state = driver.run()
        assert driver.iteration >= 3
        assert not (driver.converged and driver.schedule.at_floor(driver.barrier))
        assert len(final) == 1
        assert state.is_positive(pysand.SLACK_BLOCKS)

    def test_verbosity(self, capsys):
        pysand.WatchdogDriver(ToyLP(), verbosity=0).run()
        assert capsys.readouterr().out == ""
        pysand.WatchdogDriver(ToyLP(), verbosity=1).run()
        out = capsys.readouterr().out
        assert "converged" in out
        assert "It." not in out
        pysand.WatchdogDriver(ToyLP(), verbosity=2).run()
        out = capsys.readouterr().out
        assert "It." in out
        assert "Barrier reduced" in out


class UnitStep:
    """ Newton step of +1 in the first density entry, regardless of the state """
    penalty_multiplier = 1.0

    def find_max_step(self, state, barrier):
        step = state.zeros_like()
        step["density"] = 1.0
        return step


class TabulatedMerit:
    """ Merit given by a table of density values; 2.0 elsewhere, which is above the watchdog goal """
    def __init__(self, values):
        self.values = {0.0: 1.0, **values}

    def __call__(self, state, barrier, penalty_multiplier):
        return self.values.get(float(state["density"][0]), 2.0)

    def directional_derivative(self, state, step, barrier, penalty_multiplier):
        return -1.0


class HalfStepSearch:
    def __init__(self):
        self.starts = []

    def take_scaled_step(self, state, step, descent_requirement, barrier, penalty_multiplier):
        self.starts.append(float(state["density"][0]))
        return state.axpy(0.5, step)


class TestWatchdogBranches:
    """ Eight uphill unit steps from density 0 end at density 8; the line search from there ends at 8.5. The
    watchdog merit is 1.0 and the goal merit 1.0 - 0.1 = 0.9. """
    def watchdog(self, merits):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0, descent_requirement=0.1)
        driver.step_computer = UnitStep()
        driver.merit = TabulatedMerit(merits)
        driver.line_search = HalfStepSearch()
        state, branch = driver._watchdog(toy_state())
        return driver, state, branch

    def test_accepted(self):
        driver, state, branch = self.watchdog({3.0: 0.5})
        assert branch == WATCHDOG
        assert state["density"][0] == 3.0
        assert driver.iteration == 3
        assert driver.line_search.starts == []

    @pytest.mark.parametrize("merits", [{8.0: 0.95}, {8.0: 3.0, 8.5: 0.5}])
    def test_stretch(self, merits):
        driver, state, branch = self.watchdog(merits)
        assert branch == STRETCH
        assert state["density"][0] == 8.5
        assert driver.iteration == 9
        assert driver.line_search.starts == [8.0]

    def test_watchdog_restart(self):
        driver, state, branch = self.watchdog({8.0: 3.0, 8.5: 1.5})
        assert branch == WATCHDOG_RESTART
        # Line search along the first step of the watchdog
        assert state["density"][0] == 0.5
        assert driver.iteration == 9
        assert driver.line_search.starts == [8.0, 0.0]

    def test_stretch_restart(self):
        driver, state, branch = self.watchdog({8.0: 3.0, 8.5: 0.95})
        assert branch == STRETCH_RESTART
        # New line search from the end of the first one
        assert state["density"][0] == 9.0
        assert driver.iteration == 10
        assert driver.line_search.starts == [8.0, 8.5]

    def test_iterations_accumulate(self):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0, descent_requirement=0.1)
        driver.step_computer = UnitStep()
        driver.merit = TabulatedMerit({8.0: 3.0, 8.5: 0.95, 10.0: 0.5})
        driver.line_search = HalfStepSearch()
        state, branch = driver._watchdog(toy_state())
        assert (branch, driver.iteration) == (STRETCH_RESTART, 10)
        # Watchdog restarts at density 9; the goal is now relative to the merit there
        state, branch = driver._watchdog(state)
        assert branch == WATCHDOG
        assert state["density"][0] == 10.0
        assert driver.iteration == 11


class TestOptions:
    def test_routing(self):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0, tolerance=1e-3, max_halvings=5,
                                       initial_penalty_multiplier=10.0, n_bisections=30, fd_perturbation=1e-5,
                                       barrier_multiplier=0.5, barrier_exponent=1.5, min_barrier=1e-3)
        assert driver.convergence.tolerance == 1e-3
        assert driver.line_search.max_halvings == 5
        assert driver.penalty_multiplier == 10.0
        assert driver.step_computer.n_bisections == 30
        assert driver.merit.fd_perturbation == 1e-5
        assert driver.schedule.multiplier == 0.5
        assert driver.schedule.exponent == 1.5
        assert driver.schedule.min_barrier == 1e-3

    def test_penalty_multiplier_reset(self):
        driver = pysand.WatchdogDriver(ToyLP(), verbosity=0, max_iterations=1, initial_penalty_multiplier=2.0)
        driver.step_computer.penalty_multiplier = 1e12
        driver.run()
        assert driver.history[0]["penalty_multiplier"] < 1e12
        first = [h["penalty_multiplier"] for h in driver.history]
        driver.run()
        assert [h["penalty_multiplier"] for h in driver.history] == first

    def test_unknown_option(self):
        with pytest.raises(TypeError):
            pysand.WatchdogDriver(ToyLP(), not_an_option=1)

    @pytest.mark.parametrize("kwargs", [dict(initial_barrier=0.0), dict(max_uphill_steps=0)])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            pysand.WatchdogDriver(ToyLP(), **kwargs)

    def test_singular_system(self):
        driver = pysand.WatchdogDriver(SingularProblem(), verbosity=0)
        with pytest.raises(np.linalg.LinAlgError):
            driver.run()


class TestSANDBridge:
    def test_short_run(self):
        domain, problem = pysand.make_bridge(refinements=1)
        states = []
        state, driver = pysand.minimize_sand(problem, callback=lambda s, it: states.append(s.copy()),
                                             max_iterations=20, verbosity=0)
        assert driver.iteration >= 20
        assert len(states) == len(driver.history)
        for s in states:
            assert s.is_positive(pysand.SLACK_BLOCKS + pysand.SLACK_MULTIPLIER_BLOCKS)
            # Step constraints keep the supports fixed and the volume constant
            npt.assert_equal(s["displacement"][problem.fixed_dofs], 0.0)
            npt.assert_allclose(np.sum(s["density"]), 0.5 * domain.nel)
        assert np.all(np.isfinite([h["merit"] for h in driver.history]))

"""SAND bridge
==============

This example minimizes the compliance of a bridge using the simultaneous analysis and design (SAND) approach, in which
the densities and displacements are optimized together by a primal-dual interior-point method

The 6 x 1 domain is loaded by a downward traction at the center of the top boundary, and is supported at both bottom
corners. The example uses:

- :py:func:`pysand.make_bridge` Setup of the domain and the :py:class:`pysand.SANDElasticity` problem
- :py:func:`pysand.finite_difference` Finite difference check of the Jacobian of the problem
- :py:func:`pysand.minimize_sand` Minimization with the watchdog interior-point method
- :py:class:`pysand.WriteToVTI` Paraview output of every accepted iterate
- :py:class:`pysand.ScalarToFile` Log of the iteration history
- :py:func:`pysand.write_stl` Export of the final design as extruded solid
"""
import numpy as np

import pysand

refinements = 3  # 48 x 8 elements
check_jacobian = False

if __name__ == "__main__":
    print(__doc__)

    domain, problem = pysand.make_bridge(refinements=refinements, density_ratio=0.5, filter_radius=0.251)
    print(f"Domain of {domain.nelx} x {domain.nely} elements, {problem.initial_state().size} unknowns")

    if check_jacobian:
        # On the central path (z = b/s) the primal-dual Jacobian is exact
        barrier = 0.5
        np.random.seed(0)
        state = problem.initial_state()
        state["displacement"] = 1e-2 * np.random.rand(state.block_size("displacement"))
        state["displacement_multiplier"] = 1e-2 * np.random.rand(state.block_size("displacement_multiplier"))
        state["density_lower_slack_multiplier"] = barrier / state["density_lower_slack"]
        state["density_upper_slack_multiplier"] = barrier / state["density_upper_slack"]
        pysand.finite_difference(problem, state, barrier)

    vti = pysand.WriteToVTI(domain, saveto="out/bridge.vti", blocks=["density", "displacement"], interval=10)
    log = pysand.ScalarToFile("out/history.txt")

    def record(state, iteration):
        vti(state, iteration)
        log(driver.history[-1])

    def export(state):
        n_triangles = pysand.write_stl(domain, state["density"], "out/bridge.stl")
        print(f"Written {n_triangles} triangles to out/bridge.stl")

    driver = pysand.WatchdogDriver(problem, callback=record, final_callback=export, verbosity=2)
    state = driver.run()
    print(f"Final compliance: {problem.objective(state):.6e}, after {driver.iteration} iterations")

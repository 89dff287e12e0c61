"""Time-advancement engine of the fractional-step (projection) method.

Each time step solves two linear systems:

    A q* = MHat (rn + bc1)                      (intermediate fluxes)
    QT BN Q lambda = QT q* - r2                 (pressure and body forces)
    q^{n+1} = q* - BN Q lambda                  (projection)

where rn holds the explicit terms (time derivative, convection,
explicit diffusion) and bc1 the implicit diffusion of the boundary ghosts.
The variant decides what Q and lambda contain.

Lifecycle: UNINITIALIZED -> INITIALIZED -> (STEPPING)* -> FINALIZED.
"""

import copy
import logging
import time
from enum import Enum
from pathlib import Path

import mlflow
import numpy as np

from utilities import io

from .datastructures import Metrics, TimeSeries
from .errors import ConfigurationError
from .instrumentation import StageTimers
from .linear_solvers import LinearSystems
from .navier_stokes import NavierStokesVariant
from .operators import OperatorBuilder
from .operators.boundary import (
    boundary_flux_residual,
    create_local_arrays,
    initialize_ghosts,
    scatter_fluxes,
    update_boundary_ghosts,
)
from .operators.convection import convection_term
from .operators.laplacian import ghost_laplacian, laplacian_packed

log = logging.getLogger(__name__)


class State(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STEPPING = "stepping"
    FINALIZED = "finalized"


class FractionalStepSolver:
    """Fractional-step solver on a staggered Cartesian mesh.

    Parameters
    ----------
    mesh : CartesianMesh
        Staggered mesh (borrowed).
    flow : FlowDescription
        Viscosity, initial velocity and boundary conditions (borrowed).
    params : SimulationParameters
        Time stepping, schemes and linear solver settings (copied).
    variant : SolverVariant, optional
        Extension point (default: NavierStokesVariant).
    timers : StageTimers, optional
        Stage timers (default: a new enabled instance).
    directory : str or Path, optional
        Output directory for snapshots and logs. Nothing is written if None.
    """

    def __init__(self, mesh, flow, params, variant=None, timers=None, directory=None):
        self.mesh = mesh
        self.flow = flow
        self.params = copy.deepcopy(params)
        self.variant = variant if variant is not None else NavierStokesVariant()
        self.timers = timers if timers is not None else StageTimers()
        self.directory = Path(directory) if directory is not None else None

        self.state = State.UNINITIALIZED
        self.time_step = self.params.start_step
        self.metrics = Metrics()
        self.time_series = TimeSeries()
        self.forces = None
        self.linear_systems = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _validate(self):
        mesh, flow = self.mesh, self.flow
        if mesh.dim != flow.dim:
            raise ConfigurationError(f"Mesh is {mesh.dim}D but the flow is {flow.dim}D")
        if tuple(mesh.periodic) != tuple(flow.periodic):
            raise ConfigurationError(
                f"Mesh periodicity {mesh.periodic} does not match the boundary conditions {flow.periodic}"
            )
        if self.variant.solver_type != self.params.solver_type:
            raise ConfigurationError(
                f"Variant {self.variant.name} cannot run solver type {self.params.solver_type}"
            )
        if self.params.start_step > 0 and self.directory is None:
            raise ConfigurationError("Restarting from start_step > 0 requires an output directory")

    def initialize(self):
        """Build operators, state vectors and linear systems."""
        if self.state is not State.UNINITIALIZED:
            raise RuntimeError(f"initialize() called in state {self.state.value}")
        self._validate()

        mesh, params = self.mesh, self.params
        with self.timers.stage("initialize"):
            log.info(mesh.info())
            log.info(self.variant.info())

            self.layout = self.variant.assemble_lambda_layout(mesh)
            self.operators = OperatorBuilder(mesh, params, self.flow.nu).build(self.variant)
            self.null_vector = self.variant.null_space(self.layout)

            ops = self.operators
            self.q = np.empty(mesh.n_fluxes)
            for c in range(mesh.dim):
                s = mesh.velocity_slice(c)
                self.q[s] = self.flow.initial_velocity[c] / ops.RInv[s]
            self.lambda_ = np.zeros(self.layout.size)
            if params.start_step > 0:
                self._load_restart(params.start_step)
            self.q_star = self.q.copy()

            self.local = create_local_arrays(mesh)
            scatter_fluxes(mesh, self.q, ops.RInv, self.local)
            initialize_ghosts(mesh, self.flow, self.local)

            self.H = np.zeros(mesh.n_fluxes)
            self.H_prev = np.zeros(mesh.n_fluxes)
            self.rn = np.zeros(mesh.n_fluxes)
            self.bc1 = np.zeros(mesh.n_fluxes)
            self.rhs1 = np.zeros(mesh.n_fluxes)
            self.r2 = np.zeros(self.layout.size)
            self.rhs2 = np.zeros(self.layout.size)
            self.temp = np.zeros(mesh.n_fluxes)
            self._first_step = True
            self._assemble_r2()

            self.linear_systems = LinearSystems(ops, params, self.null_vector)

            if self.directory is not None:
                io.ensure_output_dir(self.directory)
                io.write_grid(self.directory, mesh)
                if params.start_step == 0:
                    self.write_data()

        self.state = State.INITIALIZED
        log.info(f"Initialized at time step {self.time_step}")
        return self

    def _load_restart(self, step):
        q, lambda_ = io.load_simulation_data(self.directory, step)
        if q.shape != self.q.shape or lambda_.shape != self.lambda_.shape:
            raise ConfigurationError(
                f"Snapshot at step {step} has shapes {q.shape}/{lambda_.shape}, "
                f"expected {self.q.shape}/{self.lambda_.shape}"
            )
        self.q[:] = q
        self.lambda_[:] = lambda_
        log.info(f"Restarting from time step {step}")

    def finalize(self):
        """Release the solver handles and write the logs. Safe to call twice."""
        if self.state is State.FINALIZED:
            return
        initialized = self.linear_systems is not None
        if initialized:
            self.linear_systems.close()
            if self.directory is not None:
                io.write_time_series(self.directory, self.time_series, restart=self.params.start_step > 0)
                io.write_performance_summary(self.directory, self.timers)
            log.info(f"Stage timers:\n{self.timers.to_dataframe().to_string(index=False)}")
        self.state = State.FINALIZED

    def __enter__(self):
        if self.state is State.UNINITIALIZED:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.finalize()
        return False

    # ------------------------------------------------------------------
    # Time stepping
    # ------------------------------------------------------------------

    def finished(self):
        return self.time_step >= self.params.start_step + self.params.nt

    def save_point(self):
        return self.time_step % self.params.nsave == 0

    def step_time(self):
        """Advance the flow by one time step."""
        if self.state is State.UNINITIALIZED:
            raise RuntimeError("step_time() called before initialize()")
        if self.state is State.FINALIZED:
            raise RuntimeError("step_time() called after finalize()")
        if self.state is State.STEPPING:
            raise RuntimeError("step_time() is not re-entrant")

        self.state = State.STEPPING
        try:
            self._advance()
        except BaseException:
            self.finalize()
            raise
        self.state = State.INITIALIZED

    def _advance(self):
        mesh, flow, p = self.mesh, self.flow, self.params
        ops = self.operators
        step = self.time_step + 1

        with self.timers.stage("RHSVelocity"):
            # Explicit terms at time level n (current ghosts)
            self.H[:] = convection_term(mesh, self.local)
            if self._first_step:
                self.H_prev[:] = self.H
                self._first_step = False
            self.rn[:] = ops.RInv * self.q / p.dt
            self.rn -= p.gamma * self.H + p.zeta * self.H_prev
            if p.alpha_explicit != 0.0:
                self.rn += p.alpha_explicit * flow.nu * laplacian_packed(mesh, self.local)
            self.H_prev[:] = self.H

            update_boundary_ghosts(mesh, flow, self.local, p.dt)
            self.bc1[:] = p.alpha_implicit * flow.nu * ghost_laplacian(mesh, self.local)
            self.rhs1[:] = ops.MHat * (self.rn + self.bc1)

        with self.timers.stage("solveVelocity"):
            self.linear_systems.solve_intermediate_velocity(self.rhs1, self.q_star, step)

        with self.timers.stage("RHSPoisson"):
            self._assemble_r2()
            self.rhs2[:] = ops.QT @ self.q_star - self.r2

        with self.timers.stage("solvePoisson"):
            self.linear_systems.solve_poisson_system(self.rhs2, self.lambda_, step)

        with self.timers.stage("projectionStep"):
            self.temp[:] = ops.BNQ @ self.lambda_
            self.q[:] = self.q_star - self.temp
            scatter_fluxes(mesh, self.q, ops.RInv, self.local)

        self.time_step = step
        self.forces = self.variant.body_forces(self.layout, self.lambda_)
        velocity_its, poisson_its = self.linear_systems.iterations
        self.time_series.append(
            step, velocity_its, poisson_its, np.abs(self.divergence()).max(), self.forces
        )

    def _assemble_r2(self):
        self.r2[:] = 0.0
        boundary_flux_residual(self.mesh, self.local, self.layout.block(self.r2, "pressure"))
        self.variant.assemble_boundary_residual(self.layout, self.r2)

    def divergence(self):
        """Residual of the projection constraints, QT q - r2.

        The pressure block is the discrete divergence; force blocks (if any)
        are the slip velocities at the markers.
        """
        return self.operators.QT @ self.q - self.r2

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def write_data(self):
        if self.directory is not None:
            io.save_simulation_data(self.directory, self.time_step, self.q, self.lambda_)

    def solve(self):
        """Advance until finished(), writing snapshots at every save point."""
        if self.state is State.UNINITIALIZED:
            self.initialize()

        time_start = time.time()
        mlflow_time = 0.0
        steps = 0
        while not self.finished():
            self.step_time()
            steps += 1

            if self.save_point():
                self.write_data()
                ts = self.time_series
                log.info(
                    f"Step {self.time_step}: velocity its={ts.velocity_iterations[-1]}, "
                    f"poisson its={ts.poisson_iterations[-1]}, div={ts.divergence[-1]:.3e}"
                )
                # Live MLflow logging (timed separately)
                if mlflow.active_run():
                    t_log_start = time.time()
                    mlflow.log_metrics(
                        {
                            "velocity_iterations": ts.velocity_iterations[-1],
                            "poisson_iterations": ts.poisson_iterations[-1],
                            "divergence": ts.divergence[-1],
                        },
                        step=self.time_step,
                    )
                    mlflow_time += time.time() - t_log_start

        wall_time = time.time() - time_start - mlflow_time
        ts = self.time_series
        self.metrics = Metrics(
            steps=steps,
            final_step=self.time_step,
            wall_time_seconds=wall_time,
            velocity_iterations=sum(ts.velocity_iterations),
            poisson_iterations=sum(ts.poisson_iterations),
            max_divergence=max(ts.divergence) if ts.divergence else 0.0,
        )
        log.info(f"Solver finished {steps} steps in {wall_time:.2f} seconds (excl. {mlflow_time:.2f}s logging).")
        return self.metrics

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def velocity(self, component):
        """Velocity component on its interior nodes, shaped like the mesh layout."""
        s = self.mesh.velocity_slice(component)
        return (self.operators.RInv[s] * self.q[s]).reshape(self.mesh.velocity_shapes[component])

    def pressure(self):
        return self.layout.block(self.lambda_, "pressure").reshape(self.mesh.n)

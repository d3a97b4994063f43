# tracking_mpc/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config_mpc.yaml")

FALLBACK_POLICIES = ("zero", "hold")


@dataclass
class CostWeights:
    """Relative priorities of the tracking cost terms."""
    cte: float = 2000.0
    epsi: float = 2000.0
    v: float = 1.0
    steer: float = 10.0
    accel: float = 10.0
    steer_change: float = 100.0
    accel_change: float = 10.0

    @classmethod
    def from_dict(cls, cfg: Optional[Dict[str, Any]]) -> "CostWeights":
        cfg = cfg or {}
        defaults = cls()
        return cls(
            cte=float(cfg.get("cte", defaults.cte)),
            epsi=float(cfg.get("epsi", defaults.epsi)),
            v=float(cfg.get("v", defaults.v)),
            steer=float(cfg.get("steer", defaults.steer)),
            accel=float(cfg.get("accel", defaults.accel)),
            steer_change=float(cfg.get("steer_change", defaults.steer_change)),
            accel_change=float(cfg.get("accel_change", defaults.accel_change)),
        )


@dataclass
class SolverOptions:
    """IPOPT settings handed to the solver adapter.

    ``ipopt`` holds raw IPOPT options passed through untouched; the named
    fields win if the same key shows up in both places.
    """
    max_cpu_time: float = 0.5
    print_level: int = 0
    sparse: bool = True
    max_iter: int = 200
    tol: float = 1e-6
    ipopt: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_cpu_time <= 0.0:
            raise ValueError(f"max_cpu_time must be positive, got {self.max_cpu_time}")
        if self.max_iter <= 0:
            raise ValueError(f"max_iter must be positive, got {self.max_iter}")
        if not self.sparse:
            # CasADi always propagates derivative sparsity; there is no dense mode to switch to.
            raise ValueError("dense derivative mode is not supported by the CasADi backend (sparse must be true)")

    @classmethod
    def from_dict(cls, cfg: Optional[Dict[str, Any]]) -> "SolverOptions":
        cfg = cfg or {}
        defaults = cls()
        return cls(
            max_cpu_time=float(cfg.get("max_cpu_time", defaults.max_cpu_time)),
            print_level=int(cfg.get("print_level", defaults.print_level)),
            sparse=bool(cfg.get("sparse", defaults.sparse)),
            max_iter=int(cfg.get("max_iter", defaults.max_iter)),
            tol=float(cfg.get("tol", defaults.tol)),
            ipopt=dict(cfg.get("ipopt", {}) or {}),
        )


@dataclass
class MPCConfig:
    """Constant parameters of one controller instance.

    Attributes:
        horizon_steps: Number of planned states N (N - 1 actuations)
        dt: Duration of one horizon step (seconds)
        lf: Front axle to center-of-gravity distance (m)
        ref_v: Reference speed the cost pulls towards
        max_steer: Physical steering-angle limit (rad), scaled by lf for the bound
        fallback: Command used when no solution can be applied ("zero" or "hold")
        accept_suboptimal: Apply a time/iteration-limited point if it is feasible
        feasibility_tol: Max constraint violation for a suboptimal point to count as feasible
        warm_start: Seed the solver with the previous solution shifted by one step
        verbose: Print per-cycle solver diagnostics
    """
    horizon_steps: int = 10
    dt: float = 0.1
    lf: float = 2.67
    ref_v: float = 120.0
    max_steer: float = 0.436332
    weights: CostWeights = field(default_factory=CostWeights)
    solver: SolverOptions = field(default_factory=SolverOptions)
    fallback: str = "zero"
    accept_suboptimal: bool = True
    feasibility_tol: float = 1e-4
    warm_start: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.horizon_steps < 2:
            raise ValueError(f"horizon_steps must be at least 2, got {self.horizon_steps}")
        if self.dt <= 0.0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if self.lf <= 0.0:
            raise ValueError(f"lf must be positive, got {self.lf}")
        if self.max_steer <= 0.0:
            raise ValueError(f"max_steer must be positive, got {self.max_steer}")
        if self.fallback not in FALLBACK_POLICIES:
            raise ValueError(f"Unknown fallback policy '{self.fallback}' (expected one of {FALLBACK_POLICIES})")

    @property
    def steering_limit(self) -> float:
        """Symmetric bound on the steering decision variables."""
        return self.max_steer * self.lf

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "MPCConfig":
        # Accept both a file with an "mpc:" section and a flat mapping
        mpc_cfg = cfg.get("mpc", cfg) or {}
        defaults = cls()
        return cls(
            horizon_steps=int(mpc_cfg.get("horizon_steps", defaults.horizon_steps)),
            dt=float(mpc_cfg.get("dt", defaults.dt)),
            lf=float(mpc_cfg.get("lf", defaults.lf)),
            ref_v=float(mpc_cfg.get("ref_v", defaults.ref_v)),
            max_steer=float(mpc_cfg.get("max_steer", defaults.max_steer)),
            weights=CostWeights.from_dict(mpc_cfg.get("weights")),
            solver=SolverOptions.from_dict(mpc_cfg.get("solver")),
            fallback=str(mpc_cfg.get("fallback", defaults.fallback)),
            accept_suboptimal=bool(mpc_cfg.get("accept_suboptimal", defaults.accept_suboptimal)),
            feasibility_tol=float(mpc_cfg.get("feasibility_tol", defaults.feasibility_tol)),
            warm_start=bool(mpc_cfg.get("warm_start", defaults.warm_start)),
            verbose=bool(mpc_cfg.get("verbose", defaults.verbose)),
        )


def load_config(config_path: Optional[str] = None) -> MPCConfig:
    """
    Load an MPCConfig from YAML.

    config_path defaults to config_mpc.yaml next to this module. Supports two layouts:

    1) Sectioned:
        mpc:
          horizon_steps: ...
          weights: ...
          solver: ...

    2) Flat: the same keys at top level.

    Missing keys fall back to the dataclass defaults.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    with open(config_path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError(f"Config file '{config_path}' must contain a mapping, got {type(cfg).__name__}")

    return MPCConfig.from_dict(cfg)

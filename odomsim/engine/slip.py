from __future__ import annotations

from random import Random

LINEAR_SLIP_GAIN = 0.3
ANGULAR_SLIP_GAIN = 0.03
LINEAR_NOISE_SIGMA = 0.1
ANGULAR_NOISE_SIGMA = 0.05


class SlipModel:
    """Multiplicative wheel-slip perturbation of body velocities.

    The slipped velocity loses a fraction ``s * (1 + noise) * gain`` of its
    magnitude, where ``s`` is the slippage amount and the noise spread grows
    with the magnitude of the current acceleration. With ``s == 0`` the
    transform is the identity and no random numbers are drawn.
    """

    def __init__(self, rng: Random):
        self.rng = rng

    def apply(
        self,
        slippage: float,
        linear_mps: float,
        angular_rad_s: float,
        linear_accel_mps2: float = 0.0,
        angular_accel_rad_s2: float = 0.0,
    ) -> tuple[float, float]:
        if slippage == 0.0:
            return linear_mps, angular_rad_s

        linear_noise = self.rng.gauss(0.0, LINEAR_NOISE_SIGMA * (1.0 + abs(linear_accel_mps2)))
        angular_noise = self.rng.gauss(0.0, ANGULAR_NOISE_SIGMA * (1.0 + abs(angular_accel_rad_s2)))

        slipped_linear = linear_mps * (1.0 - slippage * (1.0 + linear_noise) * LINEAR_SLIP_GAIN)
        slipped_angular = angular_rad_s * (1.0 - slippage * (1.0 + angular_noise) * ANGULAR_SLIP_GAIN)
        return slipped_linear, slipped_angular

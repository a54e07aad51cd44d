"""
orbital: 360 degree product viewer built from discrete yaw frames.

- pipeline: sprite sheet slicing and frame stabilization
- geometry: yaw / pitch to frame resolution
- compositing: per-tick stitch, parallax, shadow and zoom passes
- fsm / viewer: interaction state machine and the render-loop controller
"""

__version__ = "0.1.0"

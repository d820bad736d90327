"""System metrics for a performance overlay: CPU, AMD GPU, battery and gamepad readings, and the overlay app's message formats."""

__version__ = "0.1.0"

__all__ = [
    "amdgpu",
    "battery",
    "cpu",
    "ctl",
    "file_utils",
    "gamepad",
    "mangoapp_proto",
]
import logging
from typing import Dict

from .core.interfaces import CorrectionResult

LOGGER_NAME = "tof_rep_pipeline"


def setup_logging(log_file: str = None, level=logging.INFO) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        log_file: Path to log file (if None, logs to console only)
        level: Logging level

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # Calling twice must not duplicate console output
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def result_to_dict(result: CorrectionResult) -> Dict:
    """Flatten a correction result into JSON-friendly rows."""
    reps = []
    for rep, m in zip(result.validated_reps, result.rep_metrics):
        reps.append({
            'rep_num': rep.rep_num,
            'concentric_start_ms': float(rep.concentric_start_time),
            'eccentric_start_ms': float(rep.eccentric_start_time),
            'rep_end_ms': float(rep.rep_end_time),
            'rom_mm': round(float(rep.rom_mm), 1),
            'concentric_ms': round(m.concentric_duration_ms, 1),
            'eccentric_ms': round(m.eccentric_duration_ms, 1),
            'velocity_mps': round(m.concentric_velocity_mps, 3),
        })
    return {
        'count': result.count,
        'sampling_hz': round(result.sampling_hz, 2),
        'active_zones': list(result.active_zone_indices),
        'reps': reps,
    }

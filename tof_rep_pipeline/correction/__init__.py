from .corrector import PeakTroughRepCorrector
from .pipeline import CorrectionPipeline, build_pipeline

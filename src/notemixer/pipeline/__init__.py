"""The admission-and-mixing pipeline.

Attributes:
    MixingPipeline: Orchestrates admission, mixing, signing, storage, local
        fan-out and peer rebroadcast.
    AdmissionChain: Ordered policies with first-rejection-wins evaluation.
    Signer: Relay-key signing of mixed events.
"""

from .admission import (
    AdmissionChain,
    EventPolicy,
    KindAllowlistPolicy,
    PubkeyAllowlistPolicy,
    admit,
    default_chain,
)
from .configs import AdmissionConfig, PipelineConfig, RebroadcastConfig
from .mixing import mix, wall_clock
from .orchestrator import Fanout, MixingPipeline, PipelineStage, SubmissionResult
from .rebroadcast import rebroadcast
from .signer import Signer, sign


__all__ = [
    "AdmissionChain",
    "AdmissionConfig",
    "EventPolicy",
    "Fanout",
    "KindAllowlistPolicy",
    "MixingPipeline",
    "PipelineConfig",
    "PipelineStage",
    "PubkeyAllowlistPolicy",
    "RebroadcastConfig",
    "Signer",
    "SubmissionResult",
    "admit",
    "default_chain",
    "mix",
    "rebroadcast",
    "sign",
    "wall_clock",
]

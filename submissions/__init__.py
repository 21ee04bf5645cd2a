"""
Offline-aware write entry points.

Forms and field tools call these instead of the backend directly: online
writes go straight through, offline writes are queued for later replay.
"""

from submissions.submitter import OfflineSubmitter
from submissions.qa import (
    SubmissionResult,
    submit_house_level_qa,
    submit_machine_level_qa,
    submit_machine_wide_qa,
    submit_generic_qa,
    submit_specific_gravity,
    submit_weight_tracking,
    submit_candling_qa,
)

__all__ = [
    'OfflineSubmitter',
    'SubmissionResult',
    'submit_house_level_qa',
    'submit_machine_level_qa',
    'submit_machine_wide_qa',
    'submit_generic_qa',
    'submit_specific_gravity',
    'submit_weight_tracking',
    'submit_candling_qa',
]

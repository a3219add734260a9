"""Election JSON endpoints, split by concern.

Public view functions are re-exported here for ``voting.urls``.
"""

from voting.views_elections.lifecycle import election_reset_votes
from voting.views_elections.results import election_results, election_statistics
from voting.views_elections.vote import election_eligibility, election_vote_submit

__all__ = [
    "election_eligibility",
    "election_reset_votes",
    "election_results",
    "election_statistics",
    "election_vote_submit",
]

from django.urls import path

from voting import views_elections, views_health

urlpatterns = [
    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
    path(
        "elections/<int:election_id>/eligibility.json",
        views_elections.election_eligibility,
        name="election-eligibility",
    ),
    path(
        "elections/<int:election_id>/vote/submit.json",
        views_elections.election_vote_submit,
        name="election-vote-submit",
    ),
    path("elections/<int:election_id>/results.json", views_elections.election_results, name="election-results"),
    path(
        "elections/<int:election_id>/statistics.json",
        views_elections.election_statistics,
        name="election-statistics",
    ),
    path(
        "elections/<int:election_id>/reset-votes/",
        views_elections.election_reset_votes,
        name="election-reset-votes",
    ),
]

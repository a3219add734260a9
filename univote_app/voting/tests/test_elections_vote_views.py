from __future__ import annotations

import datetime
import json
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from voting.models import AuditLogEntry, BallotEntry
from voting.tests.utils_test_data import create_candidates, create_election, create_voter


class ElectionVoteViewTestBase(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.election = create_election()
        self.alice, self.bob, self.carol = create_candidates(
            self.election,
            ("President", "Alice"),
            ("President", "Bob"),
            ("Secretary", "Carol"),
        )
        self.voter = create_voter("voter1", email="voter1@example.org")

    def _post_json(self, url: str, payload: object):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def _submit(self, payload: object, election_id: int | None = None):
        return self._post_json(f"/elections/{election_id or self.election.id}/vote/submit.json", payload)


class ElectionVoteSubmitViewTests(ElectionVoteViewTestBase):
    def test_submit_records_ballot_and_queues_receipt(self) -> None:
        self.client.force_login(self.voter)

        with patch("voting.elections_services.send_vote_receipt_email") as send_mock:
            resp = self._submit({"selections": {"President": self.alice.id, "Secretary": "abstain"}})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertTrue(data["ok"])
        self.assertEqual(data["selections"], {"President": self.alice.id, "Secretary": "abstain"})
        self.assertEqual(data["first_candidate_id"], self.alice.id)
        self.assertEqual(BallotEntry.objects.filter(election=self.election, voter=self.voter).count(), 2)
        send_mock.assert_called_once()
        self.assertEqual(send_mock.call_args.kwargs["email"], "voter1@example.org")

    def test_submit_queues_rendered_receipt_through_post_office(self) -> None:
        from post_office.models import Email

        self.client.force_login(self.voter)

        resp = self._submit({"selections": {"President": self.bob.id, "Secretary": self.carol.id}})

        self.assertEqual(resp.status_code, 200)
        email = Email.objects.get()
        self.assertEqual(email.to, ["voter1@example.org"])
        self.assertIn(self.election.title, email.subject)
        self.assertIn(resp.json()["ballot_id"], email.message)
        self.assertIn("- President: Bob", email.message)
        self.assertIn("- Secretary: Carol", email.message)

    def test_anonymous_submit_is_401(self) -> None:
        resp = self._submit({"selections": {"President": "abstain", "Secretary": "abstain"}})

        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["code"], "not_authenticated")
        self.assertFalse(BallotEntry.objects.exists())

    def test_anonymous_admin_override_is_401_not_403(self) -> None:
        resp = self._submit(
            {"selections": {"President": "abstain", "Secretary": "abstain"}, "admin_override": True}
        )

        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["code"], "not_authenticated")

    def test_anonymous_private_election_is_401(self) -> None:
        private = create_election(title="Private", is_private=True, access_code="SC-2026")

        resp = self._submit({"selections": {}, "access_code": "wrong"}, election_id=private.id)

        self.assertEqual(resp.status_code, 401)

    def test_get_is_not_allowed(self) -> None:
        self.client.force_login(self.voter)

        resp = self.client.get(f"/elections/{self.election.id}/vote/submit.json")

        self.assertEqual(resp.status_code, 405)

    def test_double_vote_is_409(self) -> None:
        self.client.force_login(self.voter)
        payload = {"selections": {"President": self.alice.id, "Secretary": "abstain"}}

        self.assertEqual(self._submit(payload).status_code, 200)
        resp = self._submit({"selections": {"President": self.bob.id, "Secretary": self.carol.id}})

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "already_voted")
        self.assertEqual(BallotEntry.objects.filter(election=self.election).count(), 2)

    def test_incomplete_ballot_is_400_with_missing_positions(self) -> None:
        self.client.force_login(self.voter)

        resp = self._submit({"selections": {"President": self.alice.id}})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "incomplete_ballot")
        self.assertEqual(resp.json()["missing_positions"], ["Secretary"])

    def test_malformed_json_is_400(self) -> None:
        self.client.force_login(self.voter)

        resp = self.client.post(
            f"/elections/{self.election.id}/vote/submit.json",
            data="{not json",
            content_type="application/json",
        )

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "invalid_request")

    def test_bad_selection_value_is_400(self) -> None:
        self.client.force_login(self.voter)

        resp = self._submit({"selections": {"President": "alice", "Secretary": "abstain"}})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "invalid_ballot")

    def test_fractional_candidate_id_is_rejected_not_truncated(self) -> None:
        self.client.force_login(self.voter)

        resp = self._submit({"selections": {"President": self.alice.id + 0.7, "Secretary": "abstain"}})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "invalid_ballot")
        self.assertFalse(BallotEntry.objects.exists())

    def test_ineligible_voter_is_403_with_reason(self) -> None:
        self.election.restrict_voting = True
        self.election.colleges = ["College of Science"]
        self.election.save(update_fields=["restrict_voting", "colleges"])
        self.client.force_login(self.voter)

        resp = self._submit({"selections": {"President": "abstain", "Secretary": "abstain"}})

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "not_eligible")
        self.assertIn("College of Science", resp.json()["reason"])

    def test_closed_election_is_409(self) -> None:
        ended = create_election(
            title="Last year",
            starts_in=datetime.timedelta(days=-10),
            ends_in=datetime.timedelta(days=-1),
        )
        self.client.force_login(self.voter)

        resp = self._submit({"selections": {}}, election_id=ended.id)

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "election_not_active")

    def test_storage_failure_is_503(self) -> None:
        self.client.force_login(self.voter)

        with patch.object(BallotEntry.objects, "bulk_create", side_effect=DatabaseError("disk full")):
            resp = self._submit({"selections": {"President": "abstain", "Secretary": "abstain"}})

        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["code"], "storage_failure")
        self.assertFalse(BallotEntry.objects.exists())

    def test_private_election_requires_access_code(self) -> None:
        private = create_election(title="Private", is_private=True, access_code="SC-2026")
        create_candidates(private, ("President", "Dana"))
        self.client.force_login(self.voter)
        payload = {"selections": {"President": "abstain", "Secretary": "abstain"}}

        resp = self._submit({**payload, "access_code": "wrong"}, election_id=private.id)
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "invalid_access_code")

        resp = self._submit({**payload, "access_code": "SC-2026"}, election_id=private.id)
        self.assertEqual(resp.status_code, 200)

    def test_admin_override_requires_manage_permission(self) -> None:
        outsider = create_voter("outsider", can_vote=False)
        self.client.force_login(outsider)
        payload = {"selections": {"President": "abstain", "Secretary": "abstain"}, "admin_override": True}

        resp = self._submit(payload)
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "forbidden")

        admin = create_voter("registrar", can_vote=False, manage=True)
        self.client.force_login(admin)
        resp = self._submit(payload)
        self.assertEqual(resp.status_code, 200)

    def test_unknown_election_is_404(self) -> None:
        self.client.force_login(self.voter)

        resp = self._submit({"selections": {}}, election_id=999999)

        self.assertEqual(resp.status_code, 404)


class ElectionEligibilityViewTests(ElectionVoteViewTestBase):
    def test_reports_eligibility_and_participation(self) -> None:
        self.client.force_login(self.voter)
        url = f"/elections/{self.election.id}/eligibility.json"

        data = self.client.get(url).json()
        self.assertTrue(data["eligible"])
        self.assertTrue(data["voting_open"])
        self.assertEqual(data["status"], "active")
        self.assertFalse(data["has_voted"])

        self._submit({"selections": {"President": "abstain", "Secretary": "abstain"}})
        self.assertTrue(self.client.get(url).json()["has_voted"])

    def test_voter_without_privileges(self) -> None:
        self.client.force_login(create_voter("guest", can_vote=False))

        data = self.client.get(f"/elections/{self.election.id}/eligibility.json").json()

        self.assertFalse(data["can_vote"])
        self.assertFalse(data["eligible"])
        self.assertEqual(data["reason"], "You must have voter privileges to participate in this election")

    def test_anonymous_is_401(self) -> None:
        resp = self.client.get(f"/elections/{self.election.id}/eligibility.json")

        self.assertEqual(resp.status_code, 401)


class ElectionResultsViewTests(ElectionVoteViewTestBase):
    def test_results_hidden_from_voters_until_election_ends(self) -> None:
        self.client.force_login(self.voter)

        resp = self.client.get(f"/elections/{self.election.id}/results.json")

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "results_unavailable")

    def test_admin_sees_live_results(self) -> None:
        self.client.force_login(self.voter)
        self._submit({"selections": {"President": self.bob.id, "Secretary": "abstain"}})
        self.client.force_login(create_voter("admin", manage=True))

        resp = self.client.get(f"/elections/{self.election.id}/results.json")

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["total_unique_voters"], 1)
        president, secretary = data["positions"]
        self.assertEqual(president["winner"]["name"], "Bob")
        self.assertEqual(president["candidates"][0]["percentage"], 100)
        self.assertEqual(secretary["abstain_count"], 1)
        self.assertIsNone(secretary["winner"])

    def test_results_public_after_end(self) -> None:
        ended = create_election(
            title="Last year",
            starts_in=datetime.timedelta(days=-10),
            ends_in=datetime.timedelta(days=-1),
        )
        self.client.force_login(self.voter)

        resp = self.client.get(f"/elections/{ended.id}/results.json")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual([p["position"] for p in resp.json()["positions"]], ["President", "Secretary"])


class ElectionAdminViewTests(ElectionVoteViewTestBase):
    def test_statistics_require_manage_permission(self) -> None:
        self.client.force_login(self.voter)

        resp = self.client.get(f"/elections/{self.election.id}/statistics.json")

        self.assertEqual(resp.status_code, 403)

    def test_statistics_payload(self) -> None:
        self.client.force_login(self.voter)
        self._submit({"selections": {"President": self.alice.id, "Secretary": "abstain"}})
        self.client.force_login(create_voter("admin", manage=True))

        data = self.client.get(f"/elections/{self.election.id}/statistics.json").json()

        self.assertEqual(data["total_unique_voters"], 1)
        self.assertEqual(data["total_votes_count"], 2)
        self.assertEqual(data["total_abstentions"], 1)
        self.assertEqual(data["college_participation"], [{"college": "College of Engineering", "votes": 1, "percentage": 0.0}])
        self.assertEqual(
            [c["competition_level"] for c in data["candidate_competition"]],
            ["Contested", "Uncontested"],
        )

    def test_reset_votes(self) -> None:
        self.client.force_login(self.voter)
        self._submit({"selections": {"President": self.alice.id, "Secretary": "abstain"}})
        self.client.force_login(create_voter("admin", manage=True))

        resp = self.client.post(f"/elections/{self.election.id}/reset-votes/")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["deleted_entries"], 2)
        self.assertFalse(BallotEntry.objects.exists())
        audit = AuditLogEntry.objects.get(election=self.election, event_type="votes_reset")
        self.assertEqual(audit.payload["actor"], "admin")

    def test_reset_votes_forbidden_for_voters(self) -> None:
        self.client.force_login(self.voter)
        self._submit({"selections": {"President": self.alice.id, "Secretary": "abstain"}})

        resp = self.client.post(f"/elections/{self.election.id}/reset-votes/")

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(BallotEntry.objects.count(), 2)

    def test_reset_votes_after_end_is_409(self) -> None:
        ended = create_election(
            title="Last year",
            starts_in=datetime.timedelta(days=-10),
            ends_in=datetime.timedelta(days=-1),
        )
        self.client.force_login(create_voter("admin", manage=True))

        resp = self.client.post(f"/elections/{ended.id}/reset-votes/")

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "invalid_state")

from __future__ import annotations

from django.db import migrations

TEMPLATE_NAME = "election-vote-receipt"


def create_vote_receipt_email_template(apps, schema_editor) -> None:
    EmailTemplate = apps.get_model("post_office", "EmailTemplate")

    EmailTemplate.objects.update_or_create(
        name=TEMPLATE_NAME,
        defaults={
            "description": "Receipt sent to a voter after their ballot is recorded",
            "subject": "Your vote in {{ election_title }} was recorded",
            "html_content": (
                "<p>Hello {{ voter_name }},</p>\n"
                "<p>Your ballot for <strong>{{ election_title }}</strong> was recorded.</p>\n"
                "<p>Ballot reference: <code>{{ ballot_id }}</code></p>\n"
                "<ul>\n"
                "{% for choice in choices %}"
                "<li>{{ choice.position }}: {{ choice.choice }}</li>"
                "{% endfor %}"
                "</ul>\n"
                "<p>Questions? Contact {{ election_committee_email }}.</p>"
            ),
            "content": (
                "Hello {{ voter_name }},\n\n"
                "Your ballot for {{ election_title }} was recorded.\n\n"
                "Ballot reference: {{ ballot_id }}\n\n"
                "{% for choice in choices %}"
                "- {{ choice.position }}: {{ choice.choice }}\n"
                "{% endfor %}\n"
                "Questions? Contact {{ election_committee_email }}.\n"
            ),
        },
    )


def delete_vote_receipt_email_template(apps, schema_editor) -> None:
    EmailTemplate = apps.get_model("post_office", "EmailTemplate")
    EmailTemplate.objects.filter(name=TEMPLATE_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("voting", "0001_initial"),
        ("post_office", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(
            create_vote_receipt_email_template,
            delete_vote_receipt_email_template,
        ),
    ]

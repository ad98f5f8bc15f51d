import pytest

from app.businesses.directory import BusinessTone
from app.conversations.models import Turn
from app.dispatch.composer import (
    GENERAL_CHAT_PROMPT,
    GENERIC_APOLOGY,
    GREETING,
    OpenAIReplyGenerator,
    ResponseComposer,
)
from app.dispatch.outcomes import DispatchOutcome, FailureReason, OutcomeKind
from app.dispatch.prompts import TonePromptStore
from app.intents.taxonomy import IntentLabel


class _Generator:
    def __init__(self, result):
        self.result = result
        self.calls = []
        self.chat = []

    def rephrase(self, draft, tone, outcome, **chat):
        self.calls.append((draft, tone, outcome))
        self.chat.append(chat)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.mark.parametrize(
    "intent, payload, expected",
    [
        (
            IntentLabel.EMAIL_SEND,
            {"to": "a@b.com", "subject": "Hi", "message_id": "m1"},
            'I sent your email to a@b.com with the subject "Hi"',
        ),
        (
            IntentLabel.CALENDAR_SCHEDULE,
            {"title": "Meeting", "date": "2024-05-02", "time": "14:00", "duration": 60},
            "booked for 2024-05-02 at 14:00 (60 minutes)",
        ),
        (
            IntentLabel.ERP_ORDER,
            {"order_id": 7, "product": "Pizza", "quantity": 3, "total": 29.7},
            "3 x Pizza has been placed (order #7). Total: 29.70.",
        ),
        (
            IntentLabel.ERP_INVOICE_STATUS,
            {"invoice_number": "INV/2024/0042", "payment_state": "not_paid", "amount_total": 120.0},
            "Invoice INV/2024/0042 is not paid.",
        ),
        (IntentLabel.ERP_CREATE_TICKET, {"ticket_id": 12}, "support ticket #12"),
        (IntentLabel.CRM_CREATE_LEAD, {"company": "Acme Corp"}, "new lead for Acme Corp"),
        (IntentLabel.FAQ, {"answer": "9am to 6pm."}, "9am to 6pm."),
    ],
)
def test_success_templates(intent, payload, expected):
    reply = ResponseComposer().compose(DispatchOutcome.success(intent, payload))
    assert expected in reply


def test_empty_listings_have_their_own_text():
    composer = ResponseComposer()
    assert "no matching emails" in composer.compose(
        DispatchOutcome.success(IntentLabel.EMAIL_READ, {"messages": []})
    )
    assert "no events on 2024-05-02" in composer.compose(
        DispatchOutcome.success(IntentLabel.CALENDAR_CHECK, {"date": "2024-05-02", "events": []})
    )
    assert 'matching "zed"' in composer.compose(
        DispatchOutcome.success(IntentLabel.CRM_SEARCH_CONTACT, {"query": "zed", "contacts": []})
    )


def test_listings_render_one_line_per_item():
    reply = ResponseComposer().compose(
        DispatchOutcome.success(
            IntentLabel.CRM_SEARCH_CONTACT,
            {
                "query": "john",
                "contacts": [
                    {"name": "John Smith", "email": "john@acme.io"},
                    {"name": "Johnny Doe"},
                ],
            },
        )
    )
    assert "- John Smith (john@acme.io)" in reply
    assert "- Johnny Doe" in reply


def test_missing_erp_integration_names_the_provider():
    reply = ResponseComposer().compose(
        DispatchOutcome.recoverable(
            IntentLabel.ERP_ORDER, FailureReason.NO_INTEGRATION, provider="erp"
        )
    )
    assert "configure the Odoo ERP integration" in reply


def test_missing_email_slots_include_format_hint():
    reply = ResponseComposer().compose(
        DispatchOutcome.recoverable(
            IntentLabel.EMAIL_SEND,
            FailureReason.INCOMPLETE_SLOTS,
            provider="email-calendar",
            missing_fields=("subject", "body"),
        )
    )
    assert reply.startswith("To send the email, I still need a subject and the message text.")
    assert "Email address: name@example.com" in reply


def test_invalid_input_shows_user_facing_detail_only():
    composer = ResponseComposer()
    friendly = composer.compose(
        DispatchOutcome.recoverable(
            IntentLabel.ERP_ORDER,
            FailureReason.INVALID_INPUT,
            detail="Product 'unicorn' was not found.",
        )
    )
    assert "Product 'unicorn' was not found" in friendly

    raw = composer.compose(
        DispatchOutcome.recoverable(
            IntentLabel.ERP_ORDER, FailureReason.INVALID_INPUT, detail="odoo returned 400"
        )
    )
    assert "400" not in raw


@pytest.mark.parametrize(
    "outcome, expected",
    [
        (
            DispatchOutcome.recoverable(
                IntentLabel.CRM_CREATE_LEAD, FailureReason.REFRESH_FAILED, provider="crm-b"
            ),
            "renew access to Salesforce CRM",
        ),
        (
            DispatchOutcome.recoverable(
                IntentLabel.ERP_CREATE_TICKET, FailureReason.CONFIGURATION, provider="erp"
            ),
            "Odoo ERP isn't set up",
        ),
        (
            DispatchOutcome.fatal(
                IntentLabel.EMAIL_SEND, FailureReason.PROVIDER_UNAVAILABLE, provider="email-calendar"
            ),
            "Google email and calendar isn't responding",
        ),
        (
            DispatchOutcome.fatal(
                IntentLabel.CRM_SEARCH_CONTACT, FailureReason.REFRESH_FAILED, provider="crm-a"
            ),
            "reconnect the integration",
        ),
        (
            DispatchOutcome.fatal(
                IntentLabel.EMAIL_SEND, FailureReason.UNCONFIRMED, provider="email-calendar"
            ),
            "didn't confirm in time whether I managed to send the email",
        ),
        (DispatchOutcome.fatal(IntentLabel.ERP_ORDER, FailureReason.INTERNAL), GENERIC_APOLOGY),
        (DispatchOutcome.conversational(IntentLabel.GENERAL), "What would you like to do?"),
        (DispatchOutcome.conversational(IntentLabel.FAQ), "rephrase your question"),
    ],
)
def test_failure_and_conversational_replies(outcome, expected):
    assert expected in ResponseComposer().compose(outcome)


def test_broken_payload_yields_generic_apology():
    outcome = DispatchOutcome.success(IntentLabel.ERP_ORDER, {"product": "Pizza"})
    assert ResponseComposer().compose(outcome) == GENERIC_APOLOGY


def test_generator_rephrases_with_tenant_tone():
    generator = _Generator("  Hey! Your ticket #12 is open.  ")
    tone = BusinessTone("playful", business_name="Acme")
    outcome = DispatchOutcome.success(IntentLabel.ERP_CREATE_TICKET, {"ticket_id": 12})

    assert ResponseComposer(generator).compose(outcome, tone) == "Hey! Your ticket #12 is open."
    draft, used_tone, _ = generator.calls[0]
    assert "#12" in draft
    assert used_tone is tone


@pytest.mark.parametrize("result", [RuntimeError("model down"), "", "   ", None])
def test_generator_failures_fall_back_to_template(result):
    outcome = DispatchOutcome.success(IntentLabel.ERP_CREATE_TICKET, {"ticket_id": 12})
    reply = ResponseComposer(_Generator(result)).compose(outcome)
    assert reply.startswith("I opened support ticket #12.")


def test_general_chat_passes_message_and_history():
    generator = _Generator("I'm well, thanks!")
    history = [Turn("user", "hi"), Turn("assistant", "Hello!")]

    reply = ResponseComposer(generator).compose(
        DispatchOutcome.conversational(IntentLabel.GENERAL),
        message="how are you?",
        history=history,
    )

    assert reply == "I'm well, thanks!"
    assert generator.calls[0][0] == GREETING
    assert generator.chat[0] == {"message": "how are you?", "history": tuple(history)}


def test_task_replies_are_rephrased_without_chat_context():
    generator = _Generator("Ticket #12 is open.")
    ResponseComposer(generator).compose(
        DispatchOutcome.success(IntentLabel.ERP_CREATE_TICKET, {"ticket_id": 12}),
        message="my printer is broken",
    )
    assert generator.chat == [{}]


def test_every_outcome_kind_produces_text():
    composer = ResponseComposer()
    for kind in OutcomeKind:
        for reason in [None, *FailureReason]:
            outcome = DispatchOutcome(kind, IntentLabel.ERP_ORDER, reason=reason)
            assert composer.compose(outcome).strip()


def test_openai_generator_sends_tone_prompt(openai_client_factory):
    client = openai_client_factory("Bonjour!")
    generator = OpenAIReplyGenerator(client, model="gpt-4o-mini", timeout=5)

    reply = generator.rephrase(
        "Hello", BusinessTone("formal"), DispatchOutcome.conversational(IntentLabel.GENERAL)
    )

    assert reply == "Bonjour!"
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["timeout"] == 5
    assert "courteous and professional" in call["messages"][0]["content"]
    assert call["messages"][1]["content"].endswith("Hello")


def test_openai_generator_answers_general_chat(openai_client_factory):
    client = openai_client_factory("All good here!")
    generator = OpenAIReplyGenerator(client, model="gpt-4o-mini", timeout=5, history_window=2)
    history = [
        Turn("user", "old question"),
        Turn("user", "hi"),
        Turn("assistant", "Hello! How can I help?"),
    ]

    reply = generator.rephrase(
        GREETING,
        BusinessTone("friendly"),
        DispatchOutcome.conversational(IntentLabel.GENERAL),
        message=" how is your day? ",
        history=history,
    )

    assert reply == "All good here!"
    messages = client.chat.completions.calls[0]["messages"]
    assert GENERAL_CHAT_PROMPT in messages[0]["content"]
    assert messages[0]["content"].endswith(GREETING)
    assert messages[1:] == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "Hello! How can I help?"},
        {"role": "user", "content": "how is your day?"},
    ]


class TestTonePromptStore:
    def test_default_tone_is_friendly(self):
        assert "warm and approachable" in TonePromptStore().resolve(None)

    def test_unknown_tone_falls_back_to_friendly(self):
        assert "warm and approachable" in TonePromptStore().resolve(BusinessTone("sarcastic"))

    def test_tenant_instructions_override_template(self):
        prompt = TonePromptStore().resolve(
            BusinessTone("formal", instructions="Always sign as Chef Luigi.", business_name="Luigi's")
        )
        assert "Chef Luigi" in prompt
        assert "courteous" not in prompt
        assert "You speak for Luigi's." in prompt

    def test_extra_templates_are_case_insensitive(self):
        store = TonePromptStore({"Pirate": "Talk like a pirate."})
        assert "pirate" in store.resolve(BusinessTone("PIRATE"))

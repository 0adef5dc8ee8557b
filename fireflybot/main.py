"""
Demo script for the local intent extractor and the conversation machine.

Shows the candidates extracted from a few messages, then walks one
conversation through the state machine with the ledger effects printed
instead of executed.
"""

from fireflybot.conversation import CommitTransaction, ConversationMachine, ResolveAccount
from fireflybot.models import AccountRef, Session
from fireflybot.services import LocalIntentExtractor


def main():
    examples = [
        "spent 20 on lunch",
        "paid 12.50 eur from checking to the bakery",
        "got 1500 salary into savings yesterday",
        "transfer 200 from checking to savings",
        "1.5k from wallet for groceries 3 days ago",
        "20, lunch, checking, cafe",
    ]

    print("=" * 60)
    print("Local Intent Extractor Demo")
    print("=" * 60)

    extractor = LocalIntentExtractor()

    for text in examples:
        print(f'\nInput: "{text}"')
        print("-" * 40)

        result = extractor.parse(text)
        for candidate in result.candidates:
            print(
                f"  {candidate.field.value:<13} {str(candidate.value):<20} "
                f"{candidate.confidence:.0%}"
            )

    print("\n" + "=" * 60)
    print("Conversation Demo")
    print("=" * 60)

    machine = ConversationMachine()
    session = Session(chat_id="demo")

    for text in ["spent 20 on lunch", "checking", "no, make it 25", "yes"]:
        print(f"\nUser: {text}")
        extraction = None
        if machine.needs_extraction(session, text, session.updated_at):
            extraction = extractor.parse(text)
        step = machine.advance(session, text, extraction)

        while step.effect is not None:
            for reply in step.replies:
                print(f"Bot:  {reply}")
            if isinstance(step.effect, ResolveAccount):
                print(f"      [lookup account '{step.effect.name}']")
                account = AccountRef(id="1", name=step.effect.name.title())
                step = machine.account_resolved(step.session, step.effect, account)
            elif isinstance(step.effect, CommitTransaction):
                print(f"      [create transaction {step.effect.draft.to_dict()}]")
                step = machine.commit_succeeded(step.session, "42", step.effect.draft)

        for reply in step.replies:
            print(f"Bot:  {reply}")
        session = step.session
        print(f"      state: {session.state.value}")


if __name__ == "__main__":
    main()

"""Command-line run of a support session against Zendesk."""
import argparse
import asyncio
import logging

from .client import APIClient
from .config import get_settings
from .orchestrator import SupportSession
from .render import ConsoleRenderer
from .zendesk import ZendeskHost


async def run_session(
    ticket_id: str,
    email: str | None = None,
    model_assist: bool = False,
    select: str | None = None,
) -> None:
    """Load customer history, summarize the open ticket, then wait for model upgrades."""
    print("=== Ticket Radar ===\n")
    settings = get_settings()

    model = None
    if model_assist or settings.model_assist:
        if settings.model_configured:
            model = APIClient(settings=settings)
        else:
            print("ANTHROPIC_API_KEY not set; continuing with keyword heuristics only\n")

    async with ZendeskHost.from_settings(settings, current_ticket_id=ticket_id) as host:
        async with SupportSession(host, ConsoleRenderer(), model=model, settings=settings) as session:
            print("Loading customer history...")
            await session.load_customer_history(email)

            print(f"\nSummarizing ticket #{ticket_id}...")
            await session.summarize_current_ticket()

            if select:
                session.select_ticket(select)
                print(f"\nSummarizing history ticket #{select}...")
                await session.summarize_selected_ticket()

            if model is not None:
                print("\nWaiting for model risk upgrade...")
                await session.wait_for_background()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Customer complaint-risk and ticket summary helper")
    parser.add_argument("--ticket-id", required=True, help="Ticket currently open in the agent's view")
    parser.add_argument("--email", default=None, help="Requester email (looked up from the ticket if omitted)")
    parser.add_argument("--select", default=None, help="History ticket to summarize after the current one")
    parser.add_argument("--model-assist", action="store_true", help="Use the language model for scoring and summaries")
    parser.add_argument("--debug", action="store_true", help="Verbose logs")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_session(args.ticket_id, args.email, args.model_assist, args.select))


if __name__ == "__main__":
    main()

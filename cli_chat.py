"""CLI interface for chatting with a persona."""

import argparse
import asyncio
import sys
import uuid

from persona_rag.api.deps import build_providers
from persona_rag.agents import RAGQueryEngine
from persona_rag.db.session import init_db, session_factory
from persona_rag.exceptions import PersonaRagError
from persona_rag.rag.retriever import SemanticSearch
from persona_rag.services import ConversationService
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)

sys.stdout.reconfigure(line_buffering=True) if hasattr(
    sys.stdout, "reconfigure"
) else None


def print_banner(persona_id: str):
    """Print welcome banner."""
    print("\n" + "=" * 70)
    print("Persona RAG - CLI Interface")
    print("=" * 70)
    print(f"Chatting with persona {persona_id}.")
    print("Type 'exit' or 'quit' to end the conversation.\n")


def format_response(message: str, sources=None) -> str:
    """Format persona response for display, with cited document titles."""
    text = f"\n[Persona]: {message}\n"
    if sources:
        titles = ", ".join(dict.fromkeys(s.title for s in sources))
        text += f"[Sources]: {titles}\n"
    return text


async def chat_loop(org_id: str, persona_id: str, session_id: str) -> int:
    await init_db()

    logger.info("Initializing providers...")
    providers = build_providers()

    async with session_factory()() as session:
        engine = RAGQueryEngine(
            session,
            SemanticSearch(providers.embedding_client, providers.vector_store),
            providers.chat_client,
            providers.tool_executor,
        )
        service = ConversationService(session, engine)

        snapshot = await service.get_or_create(org_id, persona_id, session_id=session_id)
        conversation_id = snapshot.conversation.id
        logger.info(f"Conversation {conversation_id} ready")

        print("You can now start chatting. Type 'exit' to quit.\n")

        while True:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()

            if not user_input:
                continue

            if user_input.lower() in ["exit", "quit"]:
                print("\n" + "=" * 70)
                print("Goodbye!")
                print("=" * 70 + "\n")
                break

            try:
                logger.info("Processing message from user...")
                processed = await service.process_message(
                    conversation_id, org_id, user_input
                )
                print(format_response(processed.message.content, processed.sources))
                sys.stdout.flush()

            except PersonaRagError as e:
                logger.error(f"Error processing message: {e.message}")
                print(f"\n[System Error]: {e.message}\n")
                continue

    return 0


def run_cli_chat(argv=None):
    """Run the CLI chat interface."""
    parser = argparse.ArgumentParser(description="Chat with a persona from the terminal")
    parser.add_argument("--org-id", required=True, help="Organization owning the persona")
    parser.add_argument("--persona-id", required=True, help="Persona to chat with")
    parser.add_argument(
        "--session-id",
        default=None,
        help="Resume the ACTIVE conversation of this session (default: new session)",
    )
    args = parser.parse_args(argv)

    print_banner(args.persona_id)

    try:
        return asyncio.run(
            chat_loop(args.org_id, args.persona_id, args.session_id or f"cli-{uuid.uuid4()}")
        )

    except KeyboardInterrupt:
        print("\n\n" + "=" * 70)
        print("Conversation interrupted. Goodbye!")
        print("=" * 70 + "\n")
        return 0

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(run_cli_chat())

"""Persona management: CRUD, knowledge collections and tool bindings."""

from typing import Any, Dict, List, Optional

from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.config import settings
from persona_rag.db.models import (
    Conversation,
    KnowledgeCollection,
    Message,
    Persona,
    PersonaCollection,
    PersonaTool,
    ToolType,
    clamp_temperature,
    utcnow,
)
from persona_rag.exceptions import NotFoundError, ValidationError
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


class PersonaService:
    """Organization-scoped persona operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_persona(
        self,
        org_id: str,
        name: str,
        system_prompt: str,
        description: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        voice_enabled: bool = True,
        voice_uuid: Optional[str] = None,
    ) -> Persona:
        """
        Create a persona.

        The temperature is clamped to [0, 2]; the model defaults to
        ``settings.LLM_MODEL``.

        Raises:
            ValidationError: If the name or system prompt is blank
        """
        if not name or not name.strip():
            raise ValidationError("must not be blank", field="name")
        if not system_prompt or not system_prompt.strip():
            raise ValidationError("must not be blank", field="system_prompt")

        persona = Persona(
            org_id=org_id,
            name=name,
            description=description,
            system_prompt=system_prompt,
            model=model or settings.LLM_MODEL,
            temperature=clamp_temperature(temperature),
            voice_enabled=voice_enabled,
            voice_uuid=voice_uuid,
        )
        self.session.add(persona)
        await self.session.commit()
        await self.session.refresh(persona)
        logger.info(f"Created persona '{name}' ({persona.id}) for org {org_id}")
        return persona

    async def get_persona(self, persona_id: str, org_id: str) -> Persona:
        query = select(Persona).where(Persona.id == persona_id, Persona.org_id == org_id)
        persona = (await self.session.exec(query)).first()
        if not persona:
            raise NotFoundError("Persona", persona_id)
        return persona

    async def list_personas(self, org_id: str) -> List[Persona]:
        query = (
            select(Persona)
            .where(Persona.org_id == org_id)
            .order_by(Persona.created_at.desc())
        )
        return list((await self.session.exec(query)).all())

    async def update_persona(
        self,
        persona_id: str,
        org_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        voice_enabled: Optional[bool] = None,
        voice_uuid: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Persona:
        """
        Change persona fields; None leaves a field as is.

        Raises:
            NotFoundError: If the persona is missing or outside the organization
            ValidationError: If the new name or system prompt is blank
        """
        persona = await self.get_persona(persona_id, org_id)

        if name is not None:
            if not name.strip():
                raise ValidationError("must not be blank", field="name")
            persona.name = name
        if system_prompt is not None:
            if not system_prompt.strip():
                raise ValidationError("must not be blank", field="system_prompt")
            persona.system_prompt = system_prompt
        if description is not None:
            persona.description = description
        if model is not None:
            persona.model = model
        if temperature is not None:
            persona.temperature = clamp_temperature(temperature)
        if voice_enabled is not None:
            persona.voice_enabled = voice_enabled
        if voice_uuid is not None:
            persona.voice_uuid = voice_uuid
        if is_active is not None:
            persona.is_active = is_active

        persona.updated_at = utcnow()
        self.session.add(persona)
        await self.session.commit()
        await self.session.refresh(persona)
        logger.info(f"Updated persona {persona_id}")
        return persona

    async def delete_persona(self, persona_id: str, org_id: str) -> None:
        """Delete a persona with its collection links, tools and conversations."""
        await self.get_persona(persona_id, org_id)

        conversation_ids = select(Conversation.id).where(
            Conversation.persona_id == persona_id
        )
        await self.session.exec(
            delete(Message).where(Message.conversation_id.in_(conversation_ids))
        )
        await self.session.exec(
            delete(Conversation).where(Conversation.persona_id == persona_id)
        )
        await self.session.exec(
            delete(PersonaCollection).where(PersonaCollection.persona_id == persona_id)
        )
        await self.session.exec(
            delete(PersonaTool).where(PersonaTool.persona_id == persona_id)
        )
        await self.session.exec(delete(Persona).where(Persona.id == persona_id))
        await self.session.commit()
        logger.info(f"Deleted persona {persona_id}")

    async def list_collection_ids(self, persona_id: str, org_id: str) -> List[str]:
        await self.get_persona(persona_id, org_id)
        query = select(PersonaCollection.collection_id).where(
            PersonaCollection.persona_id == persona_id
        )
        return list((await self.session.exec(query)).all())

    async def assign_collection(
        self, persona_id: str, collection_id: str, org_id: str
    ) -> PersonaCollection:
        """Link a collection of the same organization; linking twice is a no-op."""
        await self.get_persona(persona_id, org_id)

        collection = (
            await self.session.exec(
                select(KnowledgeCollection).where(
                    KnowledgeCollection.id == collection_id,
                    KnowledgeCollection.org_id == org_id,
                )
            )
        ).first()
        if not collection:
            raise NotFoundError("Collection", collection_id)

        link = await self.session.get(PersonaCollection, (persona_id, collection_id))
        if link:
            return link

        link = PersonaCollection(persona_id=persona_id, collection_id=collection_id)
        self.session.add(link)
        await self.session.commit()
        logger.info(f"Assigned collection {collection_id} to persona {persona_id}")
        return link

    async def remove_collection(self, persona_id: str, collection_id: str, org_id: str) -> None:
        await self.get_persona(persona_id, org_id)
        await self.session.exec(
            delete(PersonaCollection).where(
                PersonaCollection.persona_id == persona_id,
                PersonaCollection.collection_id == collection_id,
            )
        )
        await self.session.commit()
        logger.info(f"Removed collection {collection_id} from persona {persona_id}")

    async def list_tools(self, persona_id: str, org_id: str) -> List[PersonaTool]:
        await self.get_persona(persona_id, org_id)
        query = (
            select(PersonaTool)
            .where(PersonaTool.persona_id == persona_id)
            .order_by(PersonaTool.created_at)
        )
        return list((await self.session.exec(query)).all())

    async def add_tool(
        self,
        persona_id: str,
        org_id: str,
        tool_type: ToolType,
        config: Optional[Dict[str, Any]] = None,
        is_enabled: bool = True,
    ) -> PersonaTool:
        """
        Enable a tool for a persona.

        There is at most one binding per (persona, tool type): adding an
        existing tool type replaces its config and enabled flag.
        """
        await self.get_persona(persona_id, org_id)

        tool = (
            await self.session.exec(
                select(PersonaTool).where(
                    PersonaTool.persona_id == persona_id,
                    PersonaTool.tool_type == tool_type,
                )
            )
        ).first()

        if tool:
            tool.config = config
            tool.is_enabled = is_enabled
        else:
            tool = PersonaTool(
                persona_id=persona_id,
                tool_type=tool_type,
                config=config,
                is_enabled=is_enabled,
            )

        self.session.add(tool)
        await self.session.commit()
        await self.session.refresh(tool)
        logger.info(f"Tool {ToolType(tool_type).value} bound to persona {persona_id}")
        return tool

    async def _get_tool(self, persona_id: str, tool_id: str) -> PersonaTool:
        tool = (
            await self.session.exec(
                select(PersonaTool).where(
                    PersonaTool.id == tool_id, PersonaTool.persona_id == persona_id
                )
            )
        ).first()
        if not tool:
            raise NotFoundError("Tool", tool_id)
        return tool

    async def update_tool(
        self,
        persona_id: str,
        tool_id: str,
        org_id: str,
        config: Optional[Dict[str, Any]] = None,
        is_enabled: Optional[bool] = None,
    ) -> PersonaTool:
        """Change the config and/or enabled flag of a binding; None leaves a field as is."""
        await self.get_persona(persona_id, org_id)
        tool = await self._get_tool(persona_id, tool_id)

        if config is not None:
            tool.config = config
        if is_enabled is not None:
            tool.is_enabled = is_enabled

        self.session.add(tool)
        await self.session.commit()
        await self.session.refresh(tool)
        return tool

    async def remove_tool(self, persona_id: str, tool_id: str, org_id: str) -> None:
        await self.get_persona(persona_id, org_id)
        await self.session.exec(
            delete(PersonaTool).where(
                PersonaTool.id == tool_id, PersonaTool.persona_id == persona_id
            )
        )
        await self.session.commit()
        logger.info(f"Removed tool {tool_id} from persona {persona_id}")


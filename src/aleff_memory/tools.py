"""Agent-facing memory tools.

Every tool validates its raw parameters against a pydantic schema before
touching the store and answers with a dict carrying ``success`` plus either
a payload or a Portuguese ``error`` message. No exception leaves a tool.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from .enums import EntityType, FactType, MemoryCategory
from .errors import InvalidInputError, ToolError
from .logging import LogEventType, get_logger

if TYPE_CHECKING:
    from .plugin import MemoryPlugin

logger = get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "PostgreSQL não configurado. Defina DATABASE_URL ou as variáveis POSTGRES_*."
)
DEFAULT_CHANNEL = "telegram"


# Parameter schemas
class SaveToMemorySchema(BaseModel):
    content: str = Field(
        ...,
        min_length=1,
        description="O conteúdo a ser salvo (fato, decisão, preferência)",
    )
    category: MemoryCategory = Field(..., description="Categoria do conteúdo")
    name: str = Field(
        ..., min_length=1, description="Nome curto/identificador para fácil recuperação"
    )
    importance: int = Field(
        default=5, ge=1, le=10, description="Nível de importância (1-10, padrão 5)"
    )
    tags: list[str] = Field(
        default_factory=list, description="Tags para organização e busca"
    )


class SearchMemorySchema(BaseModel):
    query: str = Field(..., min_length=1, description="Termo de busca ou pergunta")
    limit: int = Field(
        default=10, ge=1, le=50, description="Número máximo de resultados (padrão 10)"
    )


class SemanticSearchSchema(BaseModel):
    query: str = Field(..., min_length=1, description="Pergunta ou tema a buscar")
    limit: int = Field(
        default=10, ge=1, le=50, description="Número máximo de resultados (padrão 10)"
    )
    threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Similaridade mínima (0-1, padrão 0.7)"
    )


class GetContextSchema(BaseModel):
    limit: int = Field(
        default=20, ge=1, le=100, description="Número máximo de mensagens (padrão 20)"
    )


class QueryKnowledgeGraphSchema(BaseModel):
    entity: str = Field(..., min_length=1, description="Nome exato da entidade")
    include_facts: bool = Field(default=True, description="Incluir fatos atuais")
    fact_type: FactType | None = Field(
        default=None, description="Filtrar fatos por tipo"
    )
    limit: int = Field(
        default=20, ge=1, le=100, description="Número máximo de fatos (padrão 20)"
    )


class FindConnectionSchema(BaseModel):
    from_entity: str = Field(..., min_length=1, description="Entidade de origem")
    to_entity: str = Field(..., min_length=1, description="Entidade de destino")
    max_depth: int = Field(
        default=3, ge=1, le=6, description="Número máximo de saltos (padrão 3)"
    )


class LearnFactSchema(BaseModel):
    entity: str = Field(..., min_length=1, description="Sobre quem/o quê é o fato")
    fact_type: FactType = Field(..., description="Tipo do fato")
    content: str = Field(..., min_length=1, description="O fato em si")
    confidence: float = Field(
        default=0.9, ge=0.0, le=1.0, description="Confiança no fato (0-1, padrão 0.9)"
    )
    entity_type: EntityType | None = Field(
        default=None, description="Tipo da entidade, se conhecido"
    )
    supersede: bool = Field(
        default=False,
        description="Encerrar fatos anteriores do mesmo tipo sobre a entidade",
    )


def _validation_message(error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(part) for part in e['loc']) or 'parâmetros'}: {e['msg']}"
        for e in error.errors()
    )
    return f"Parâmetros inválidos: {details}"


class MemoryTool:
    """Base class: validation, configuration check and error translation."""

    name: str = ""
    description: str = ""
    args_schema: type[BaseModel]
    requires_store = True

    def __init__(self, plugin: MemoryPlugin):
        self.plugin = plugin

    async def execute(
        self,
        params: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        start_time = time.perf_counter()
        logger.info(
            "Tool called", event_type=LogEventType.TOOL_CALL, tool_name=self.name
        )
        try:
            try:
                args = self.args_schema.model_validate(params or {})
            except ValidationError as e:
                raise InvalidInputError(
                    _validation_message(e),
                    tool_name=self.name,
                    error_code="INVALID_INPUT",
                ) from e
            if self.requires_store and not self.plugin.is_enabled:
                raise ToolError(
                    NOT_CONFIGURED_MESSAGE,
                    tool_name=self.name,
                    error_code="CONFIGURATION_ERROR",
                )
            result = await self._execute(args, context or {})
        except ToolError as e:
            logger.warning(
                "Tool failed",
                event_type=LogEventType.TOOL_RESULT,
                tool_name=self.name,
                error_code=e.error_code,
                error=e.message,
            )
            return {"success": False, "error": e.message}
        except Exception as e:
            logger.error(
                "Tool execution failed",
                event_type=LogEventType.ERROR,
                tool_name=self.name,
                error=str(e),
                exc_info=True,
            )
            return {"success": False, "error": f"Erro interno ao executar {self.name}"}

        logger.info(
            "Tool completed",
            event_type=LogEventType.TOOL_RESULT,
            tool_name=self.name,
            duration_ms=round((time.perf_counter() - start_time) * 1000),
        )
        return {"success": True, **result}

    async def _execute(self, args: Any, context: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def to_definition(self) -> dict[str, Any]:
        """Name, description and JSON schema for registering with the host."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_schema.model_json_schema(),
        }


class SaveToMemoryTool(MemoryTool):
    name = "save_to_memory"
    description = (
        "Salva um fato, decisão ou informação importante na memória institucional "
        "permanente. Use para preservar decisões estratégicas, preferências ou "
        "conhecimento que deve ser lembrado."
    )
    args_schema = SaveToMemorySchema

    async def _execute(self, args: SaveToMemorySchema, context):
        saved = await self.plugin.persistence.save_to_memory_index(
            content=args.content,
            key_type=args.category.value,
            key_name=args.name,
            importance=args.importance,
            tags=args.tags,
            channel=context.get("messageChannel"),
        )
        if not saved:
            raise ToolError(
                "Falha ao salvar na memória",
                tool_name=self.name,
                error_code="STORE_ERROR",
            )
        return {"message": f"Salvo na memória: [{args.category.value}] {args.name}"}


class SearchMemoryTool(MemoryTool):
    name = "search_memory"
    description = (
        "Busca na memória institucional por conversas relevantes (busca textual). "
        "Use para recuperar contexto histórico e decisões anteriores."
    )
    args_schema = SearchMemorySchema

    async def _execute(self, args: SearchMemorySchema, context):
        hits = await self.plugin.search.search_messages(args.query, args.limit)
        return {
            "count": len(hits),
            "memories": [
                {
                    "role": hit.role,
                    "content": hit.content,
                    "timestamp": hit.created_at.isoformat(),
                }
                for hit in hits
            ],
        }


class SemanticSearchTool(MemoryTool):
    name = "semantic_search"
    description = (
        "Busca semântica (por significado) nas conversas anteriores. "
        "Sem embeddings disponíveis, cai para busca textual com similaridade 0."
    )
    args_schema = SemanticSearchSchema

    async def _execute(self, args: SemanticSearchSchema, context):
        hits = await self.plugin.search.vector_search(
            args.query, limit=args.limit, threshold=args.threshold
        )
        return {
            "count": len(hits),
            "results": [
                {
                    "role": hit.role,
                    "content": hit.content,
                    "similarity": round(hit.similarity, 4),
                    "timestamp": hit.created_at.isoformat(),
                }
                for hit in hits
            ],
        }


class GetConversationContextTool(MemoryTool):
    name = "get_conversation_context"
    description = (
        "Recupera o contexto recente da conversa atual. "
        "Use quando precisar relembrar o que foi discutido recentemente."
    )
    args_schema = GetContextSchema

    async def _execute(self, args: GetContextSchema, context):
        messages = await self.plugin.conversations.get_context(
            user_id=context.get("sessionKey") or "unknown",
            channel=context.get("messageChannel") or DEFAULT_CHANNEL,
            limit=args.limit,
        )
        return {
            "count": len(messages),
            "messages": [
                {
                    "role": m.role,
                    "content": m.content,
                    "timestamp": m.created_at.isoformat(),
                }
                for m in messages
            ],
        }


class QueryKnowledgeGraphTool(MemoryTool):
    name = "query_knowledge_graph"
    description = (
        "Consulta o grafo de conhecimento: relacionamentos e fatos atuais "
        "sobre uma pessoa, empresa, projeto ou conceito."
    )
    args_schema = QueryKnowledgeGraphSchema

    async def _execute(self, args: QueryKnowledgeGraphSchema, context):
        graph = self.plugin.graph
        entity = await graph.find_entity(args.entity)
        if entity is None:
            raise ToolError(
                f"Entidade não encontrada: {args.entity}",
                tool_name=self.name,
                error_code="NOT_FOUND",
            )

        relationships = await graph.get_entity_relationships(entity.name)
        result: dict[str, Any] = {
            "entity": {
                "name": entity.name,
                "type": entity.entity_type,
                "description": entity.description,
            },
            "outgoing": [
                {"to": e.entity, "type": e.relationship_type, "strength": e.strength}
                for e in (relationships.outgoing if relationships else [])
            ],
            "incoming": [
                {"from": e.entity, "type": e.relationship_type, "strength": e.strength}
                for e in (relationships.incoming if relationships else [])
            ],
        }
        if args.include_facts:
            facts = await graph.get_entity_facts(
                entity.name, fact_type=args.fact_type, limit=args.limit
            )
            result["facts"] = [
                {
                    "type": f.fact_type,
                    "content": f.content,
                    "confidence": f.confidence,
                    "valid_from": f.valid_from.isoformat(),
                }
                for f in facts
            ]
        return result


class FindConnectionTool(MemoryTool):
    name = "find_connection"
    description = (
        "Encontra o caminho de conexão mais curto entre duas entidades "
        "no grafo de conhecimento."
    )
    args_schema = FindConnectionSchema

    async def _execute(self, args: FindConnectionSchema, context):
        path = await self.plugin.graph.find_connection_path(
            args.from_entity, args.to_entity, max_depth=args.max_depth
        )
        if not path.found:
            return {
                "found": False,
                "message": (
                    f"Nenhuma conexão encontrada entre {args.from_entity} e "
                    f"{args.to_entity} (profundidade máxima {args.max_depth})"
                ),
            }
        return {
            "found": True,
            "path": {
                "entities": path.entities,
                "relationships": path.relationships,
                "length": path.length,
            },
        }


class LearnFactTool(MemoryTool):
    name = "learn_fact"
    description = (
        "Registra um fato sobre uma entidade no grafo de conhecimento e "
        "deriva relacionamentos do texto (ex.: 'trabalha na X')."
    )
    args_schema = LearnFactSchema

    async def _execute(self, args: LearnFactSchema, context):
        graph = self.plugin.graph
        embeddings = self.plugin.embeddings

        if args.entity_type and await graph.find_entity(args.entity) is None:
            await graph.upsert_entity(
                args.entity_type,
                args.entity,
                embedding=await embeddings.generate(args.entity),
            )

        fact = await graph.add_fact(
            args.entity,
            args.fact_type,
            args.content,
            confidence=args.confidence,
            embedding=await embeddings.generate(args.content),
            supersede=args.supersede,
        )
        if fact is None:
            raise ToolError(
                "Falha ao registrar o fato",
                tool_name=self.name,
                error_code="STORE_ERROR",
            )

        linked = []
        for extracted in graph.extract_relationships(args.content, args.entity):
            if await graph.find_entity(extracted.target) is None:
                await graph.upsert_entity(
                    graph.infer_entity_type(extracted.target),
                    extracted.target,
                    embedding=await embeddings.generate(extracted.target),
                )
            relationship = await graph.create_relationship(
                args.entity,
                extracted.target,
                extracted.relationship_type,
                strength=args.confidence,
            )
            if relationship is not None:
                linked.append(
                    {"to": extracted.target, "type": extracted.relationship_type}
                )

        return {
            "message": f"Fato registrado sobre {args.entity}: [{args.fact_type.value}]",
            "fact_id": str(fact.id),
            "relationships": linked,
        }


TOOL_CLASSES: list[type[MemoryTool]] = [
    SaveToMemoryTool,
    SearchMemoryTool,
    SemanticSearchTool,
    GetConversationContextTool,
    QueryKnowledgeGraphTool,
    FindConnectionTool,
    LearnFactTool,
]


class MemoryTools:
    """Registry of the memory tools bound to one plugin instance."""

    def __init__(self, plugin: MemoryPlugin):
        self._tools = {cls.name: cls(plugin) for cls in TOOL_CLASSES}

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __getitem__(self, name: str) -> MemoryTool:
        return self._tools[name]

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.to_definition() for tool in self._tools.values()]

    async def call(
        self,
        name: str,
        params: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            return {"success": False, "error": f"Ferramenta desconhecida: {name}"}
        return await tool.execute(params, context)

    async def save_to_memory(self, params, context=None):
        return await self.call("save_to_memory", params, context)

    async def search_memory(self, params, context=None):
        return await self.call("search_memory", params, context)

    async def semantic_search(self, params, context=None):
        return await self.call("semantic_search", params, context)

    async def get_conversation_context(self, params=None, context=None):
        return await self.call("get_conversation_context", params, context)

    async def query_knowledge_graph(self, params, context=None):
        return await self.call("query_knowledge_graph", params, context)

    async def find_connection(self, params, context=None):
        return await self.call("find_connection", params, context)

    async def learn_fact(self, params, context=None):
        return await self.call("learn_fact", params, context)

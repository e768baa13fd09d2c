"""Tests for the knowledge graph service."""

from unittest.mock import AsyncMock

import pytest

from aleff_memory.enums import EntityType, FactType, RelationshipType
from aleff_memory.errors import StoreError
from aleff_memory.services import KnowledgeGraph


async def chain(graph, *names, relationship_type="knows"):
    for name in names:
        await graph.upsert_entity("person", name)
    for left, right in zip(names, names[1:]):
        await graph.create_relationship(left, right, relationship_type)


class TestEntities:
    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, graph, repository):
        first = await graph.upsert_entity("person", "Ana", description="CTO")
        second = await graph.upsert_entity("person", "Ana")

        assert first.id == second.id
        assert len(repository.entities) == 1
        assert second.description == "CTO"

    @pytest.mark.asyncio
    async def test_upsert_updates_given_fields(self, graph):
        await graph.upsert_entity("person", "Ana", description="CTO")
        updated = await graph.upsert_entity(
            EntityType.PERSON, "Ana", description="CEO", embedding=[1.0, 0.0]
        )

        assert updated.description == "CEO"
        assert updated.embedding == [1.0, 0.0]

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, graph, repository):
        assert await graph.upsert_entity("planet", "Marte") is None
        assert repository.entities == {}

    @pytest.mark.asyncio
    async def test_find_entity_store_error(self, graph, repository):
        repository.get_entity_by_name = AsyncMock(side_effect=StoreError("down"))

        assert await graph.find_entity("Ana") is None


class TestRelationships:
    @pytest.mark.asyncio
    async def test_repeated_create_keeps_one_edge(self, graph, repository):
        await graph.upsert_entity("person", "Ana")
        await graph.upsert_entity("company", "BASE")

        await graph.create_relationship("Ana", "BASE", "works_at", strength=0.5)
        await graph.create_relationship("Ana", "BASE", "works_at", strength=0.8)

        [edge] = repository.relationships.values()
        assert edge.strength == 0.8

    @pytest.mark.asyncio
    async def test_different_type_is_another_edge(self, graph, repository):
        await graph.upsert_entity("person", "Ana")
        await graph.upsert_entity("company", "BASE")

        await graph.create_relationship("Ana", "BASE", RelationshipType.WORKS_AT)
        await graph.create_relationship("Ana", "BASE", RelationshipType.OWNS)

        assert len(repository.relationships) == 2

    @pytest.mark.asyncio
    async def test_missing_entity_gives_none(self, graph, repository):
        await graph.upsert_entity("person", "Ana")

        assert await graph.create_relationship("Ana", "Ninguém", "knows") is None
        assert repository.relationships == {}

    @pytest.mark.asyncio
    async def test_invalid_type_gives_none(self, graph):
        await chain(graph, "Ana", "Bruno")

        assert await graph.create_relationship("Ana", "Bruno", "loves") is None

    @pytest.mark.asyncio
    async def test_entity_relationships_both_directions(self, graph):
        await graph.upsert_entity("person", "Ana")
        await graph.upsert_entity("company", "BASE")
        await graph.upsert_entity("person", "Bruno")
        await graph.create_relationship("Ana", "BASE", "works_at", strength=0.9)
        await graph.create_relationship("Bruno", "Ana", "knows")

        result = await graph.get_entity_relationships("Ana")

        assert [(e.entity, e.relationship_type) for e in result.outgoing] == [
            ("BASE", "works_at")
        ]
        assert [(e.entity, e.relationship_type) for e in result.incoming] == [
            ("Bruno", "knows")
        ]

    @pytest.mark.asyncio
    async def test_entity_relationships_unknown(self, graph):
        assert await graph.get_entity_relationships("Ninguém") is None


class TestFacts:
    @pytest.mark.asyncio
    async def test_add_fact_creates_entity_with_inferred_type(
        self, graph, repository
    ):
        fact = await graph.add_fact("ACME", "status", "em expansão")

        entity = await graph.find_entity("ACME")
        assert entity.entity_type == "company"
        assert fact.entity_id == entity.id
        assert fact.valid_to is None

    @pytest.mark.asyncio
    async def test_custom_classifier(self, repository, clock):
        graph = KnowledgeGraph(
            repository, classifier=lambda name: EntityType.PROJECT, clock=clock
        )

        await graph.add_fact("Aleff", "status", "em produção")

        assert (await graph.find_entity("Aleff")).entity_type == "project"

    @pytest.mark.asyncio
    async def test_facts_append_only_by_default(self, graph):
        await graph.add_fact("Ana", FactType.STATUS, "é gerente")
        await graph.add_fact("Ana", FactType.STATUS, "é diretora")

        facts = await graph.get_entity_facts("Ana")
        assert {f.content for f in facts} == {"é gerente", "é diretora"}

    @pytest.mark.asyncio
    async def test_supersede_closes_open_facts_of_same_type(self, graph, clock):
        old = await graph.add_fact("Ana", "status", "é gerente")
        preference = await graph.add_fact("Ana", "preference", "prefere café")
        clock.advance(days=30)
        await graph.add_fact("Ana", "status", "é diretora", supersede=True)

        assert old.valid_to == clock.now
        assert preference.valid_to is None
        facts = await graph.get_entity_facts("Ana", fact_type="status")
        assert [f.content for f in facts] == ["é diretora"]

    @pytest.mark.asyncio
    async def test_fact_filters(self, graph):
        await graph.add_fact("Ana", "skill", "Python", confidence=0.95)
        await graph.add_fact("Ana", "skill", "Go", confidence=0.4)
        await graph.add_fact("Ana", "preference", "chá", confidence=0.99)

        facts = await graph.get_entity_facts(
            "Ana", fact_type=FactType.SKILL, min_confidence=0.5
        )

        assert [f.content for f in facts] == ["Python"]

    @pytest.mark.asyncio
    async def test_unknown_fact_type(self, graph, repository):
        assert await graph.add_fact("Ana", "rumor", "x") is None
        assert repository.facts == {}

    @pytest.mark.asyncio
    async def test_facts_of_unknown_entity(self, graph):
        assert await graph.get_entity_facts("Ninguém") == []


class TestConnectionPath:
    @pytest.mark.asyncio
    async def test_two_hop_path_found(self, graph):
        await chain(graph, "A", "B", "C")

        path = await graph.find_connection_path("A", "C", max_depth=2)

        assert path.found
        assert path.entities == ["A", "B", "C"]
        assert path.relationships == ["knows", "knows"]
        assert path.length == 2

    @pytest.mark.asyncio
    async def test_path_longer_than_depth_not_found(self, graph):
        await chain(graph, "A", "B", "C", "Z")

        assert not (await graph.find_connection_path("A", "Z", max_depth=1)).found
        assert not (await graph.find_connection_path("A", "Z", max_depth=2)).found
        assert (await graph.find_connection_path("A", "Z", max_depth=3)).length == 3

    @pytest.mark.asyncio
    async def test_edges_are_undirected(self, graph):
        await chain(graph, "A", "B", "C")

        path = await graph.find_connection_path("C", "A")

        assert path.entities == ["C", "B", "A"]

    @pytest.mark.asyncio
    async def test_shortest_path_preferred(self, graph):
        await chain(graph, "A", "B", "C", "D")
        await graph.create_relationship("A", "D", "works_at")

        path = await graph.find_connection_path("A", "D")

        assert path.entities == ["A", "D"]
        assert path.relationships == ["works_at"]

    @pytest.mark.asyncio
    async def test_same_entity(self, graph):
        await graph.upsert_entity("person", "A")

        path = await graph.find_connection_path("A", "A")

        assert path.found
        assert path.entities == ["A"]
        assert path.length == 0

    @pytest.mark.asyncio
    async def test_unknown_endpoint(self, graph):
        await graph.upsert_entity("person", "A")

        assert not (await graph.find_connection_path("A", "Nada")).found

    @pytest.mark.asyncio
    async def test_disconnected(self, graph):
        await chain(graph, "A", "B")
        await chain(graph, "X", "Y")

        assert not (await graph.find_connection_path("A", "Y", max_depth=6)).found

"""Descriptors for the standard element types."""

from __future__ import annotations

from typing import TYPE_CHECKING

from metagraph.handlers.entity_facade import EntityDescriptor, TypedEntityFacade

if TYPE_CHECKING:
    from metagraph.graph import MetadataGraph

GLOSSARY = EntityDescriptor(
    type_name="Glossary",
    description="A collection of glossary terms and categories",
)

GLOSSARY_TERM = EntityDescriptor(
    type_name="GlossaryTerm",
    description="A term owned by a glossary",
    parent_type_name="Glossary",
    parent_relationship_type="TermAnchor",
    parent_required=True,
)

GLOSSARY_CATEGORY = EntityDescriptor(
    type_name="GlossaryCategory",
    description="A category owned by a glossary",
    parent_type_name="Glossary",
    parent_relationship_type="CategoryAnchor",
    parent_required=True,
)

CONNECTION = EntityDescriptor(
    type_name="Connection",
    description="Connection details for the asset it is anchored to",
    parent_type_name="Asset",
    parent_relationship_type="ConnectionToAsset",
    parent_at_end1=False,
)

ENDPOINT = EntityDescriptor(
    type_name="Endpoint",
    description="A network address shared by connections",
)

LOCATION = EntityDescriptor(
    type_name="Location",
    description="A physical or logical location, optionally nested in another",
    parent_type_name="Location",
    parent_relationship_type="NestedLocation",
    anchored_to_parent=False,
)

PERSON_ROLE = EntityDescriptor(
    type_name="PersonRole",
    description="A role that people are appointed to",
)

TO_DO = EntityDescriptor(
    type_name="ToDo",
    description="An action raised against an element",
    parent_type_name="Referenceable",
    parent_relationship_type="ActionSponsor",
    name_properties=["qualifiedName", "name"],
)

SOLUTION_COMPONENT = EntityDescriptor(
    type_name="SolutionComponent",
    description="A component of a solution, optionally part of a larger component",
    parent_type_name="SolutionComponent",
    parent_relationship_type="SolutionComposition",
    anchored_to_parent=False,
)

INFORMATION_SUPPLY_CHAIN = EntityDescriptor(
    type_name="InformationSupplyChain",
    description="The flow of information between systems",
)

INFORMATION_SUPPLY_CHAIN_SEGMENT = EntityDescriptor(
    type_name="InformationSupplyChainSegment",
    description="One segment of an information supply chain",
    parent_type_name="InformationSupplyChain",
    parent_relationship_type="InformationSupplyChainComposition",
    parent_required=True,
)

DATA_STRUCTURE = EntityDescriptor(
    type_name="DataStructure",
    description="A named group of data fields",
)

DATA_FIELD = EntityDescriptor(
    type_name="DataField",
    description="A field within a data structure",
    parent_type_name="DataStructure",
    parent_relationship_type="MemberDataField",
)

STANDARD_DESCRIPTORS = {
    descriptor.type_name: descriptor
    for descriptor in (
        GLOSSARY,
        GLOSSARY_TERM,
        GLOSSARY_CATEGORY,
        CONNECTION,
        ENDPOINT,
        LOCATION,
        PERSON_ROLE,
        TO_DO,
        SOLUTION_COMPONENT,
        INFORMATION_SUPPLY_CHAIN,
        INFORMATION_SUPPLY_CHAIN_SEGMENT,
        DATA_STRUCTURE,
        DATA_FIELD,
    )
}


def facade_for(graph: MetadataGraph, type_name: str) -> TypedEntityFacade:
    """Return a facade for one of the standard element types."""
    descriptor = STANDARD_DESCRIPTORS.get(type_name)
    if descriptor is None:
        raise KeyError(f"No standard descriptor for {type_name}")
    return TypedEntityFacade(graph, descriptor)

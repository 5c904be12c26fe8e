"""Built-in type catalogue.

Covers the element types handled by the standard entity descriptors:
glossaries, terms and categories, connections, locations, roles, to-dos,
solution components, information supply chains and data structures.
"""

from metagraph.models.typedefs import (
    ClassificationDef,
    EntityDef,
    PropertyDef,
    PropertyKind,
    RelationshipDef,
    TypeCatalogue,
)
from metagraph.services.type_registry import TypeRegistry

STRING = PropertyKind.STRING
INT = PropertyKind.INT
BOOL = PropertyKind.BOOL
DATE = PropertyKind.DATE
ARRAY = PropertyKind.ARRAY
MAP = PropertyKind.MAP


def _props(*specs: tuple) -> list[PropertyDef]:
    """Build property defs from (name, kind) or (name, kind, required, unique)."""
    defs = []
    for spec in specs:
        name, kind, *flags = spec
        required = flags[0] if flags else False
        unique = flags[1] if len(flags) > 1 else False
        defs.append(PropertyDef(name=name, kind=kind, required=required, unique=unique))
    return defs


_DESCRIBED = (("displayName", STRING), ("description", STRING))

ENTITY_DEFS = [
    EntityDef(name="OpenMetadataRoot"),
    EntityDef(
        name="Referenceable",
        supertype="OpenMetadataRoot",
        properties=_props(
            ("qualifiedName", STRING, True, True),
            ("additionalProperties", MAP),
        ),
    ),
    EntityDef(
        name="Glossary",
        supertype="Referenceable",
        properties=_props(*_DESCRIBED, ("language", STRING), ("usage", STRING)),
        name_properties=["qualifiedName", "displayName"],
    ),
    EntityDef(
        name="GlossaryTerm",
        supertype="Referenceable",
        properties=_props(
            *_DESCRIBED,
            ("summary", STRING),
            ("examples", STRING),
            ("abbreviation", STRING),
            ("usage", STRING),
        ),
        name_properties=["qualifiedName", "displayName"],
    ),
    EntityDef(
        name="GlossaryCategory",
        supertype="Referenceable",
        properties=_props(*_DESCRIBED),
        name_properties=["qualifiedName", "displayName"],
    ),
    EntityDef(
        name="Asset",
        supertype="Referenceable",
        properties=_props(
            ("name", STRING),
            *_DESCRIBED,
            ("resourceName", STRING),
            ("versionIdentifier", STRING),
        ),
        name_properties=["qualifiedName", "name", "displayName", "resourceName"],
    ),
    EntityDef(name="DataSet", supertype="Asset"),
    EntityDef(
        name="Connection",
        supertype="Referenceable",
        properties=_props(
            *_DESCRIBED,
            ("userId", STRING),
            ("securedProperties", MAP),
            ("configurationProperties", MAP),
        ),
    ),
    EntityDef(
        name="ConnectorType",
        supertype="Referenceable",
        properties=_props(*_DESCRIBED, ("connectorProviderClassName", STRING)),
    ),
    EntityDef(
        name="Endpoint",
        supertype="Referenceable",
        properties=_props(
            ("name", STRING),
            ("description", STRING),
            ("networkAddress", STRING),
            ("protocol", STRING),
            ("encryptionMethod", STRING),
        ),
        name_properties=["qualifiedName", "name", "networkAddress"],
    ),
    EntityDef(
        name="Location",
        supertype="Referenceable",
        properties=_props(("identifier", STRING), *_DESCRIBED),
        name_properties=["qualifiedName", "identifier", "displayName"],
    ),
    EntityDef(
        name="PersonRole",
        supertype="Referenceable",
        properties=_props(
            ("identifier", STRING),
            *_DESCRIBED,
            ("scope", STRING),
            ("headCount", INT),
        ),
        name_properties=["qualifiedName", "identifier", "displayName"],
    ),
    EntityDef(
        name="ToDo",
        supertype="Referenceable",
        properties=_props(
            ("name", STRING),
            ("description", STRING),
            ("toDoType", STRING),
            ("priority", INT),
            ("dueTime", DATE),
            ("completionTime", DATE),
            ("toDoStatus", STRING),
        ),
        name_properties=["qualifiedName", "name"],
    ),
    EntityDef(
        name="SolutionComponent",
        supertype="Referenceable",
        properties=_props(
            *_DESCRIBED,
            ("solutionComponentType", STRING),
            ("plannedDeployedImplementationType", STRING),
            ("versionIdentifier", STRING),
        ),
    ),
    EntityDef(
        name="InformationSupplyChain",
        supertype="Referenceable",
        properties=_props(*_DESCRIBED, ("scope", STRING), ("purposes", ARRAY)),
    ),
    EntityDef(
        name="InformationSupplyChainSegment",
        supertype="Referenceable",
        properties=_props(
            *_DESCRIBED,
            ("scope", STRING),
            ("integrationStyle", STRING),
            ("estimatedVolumetrics", MAP),
        ),
    ),
    EntityDef(
        name="DataStructure",
        supertype="Referenceable",
        properties=_props(*_DESCRIBED, ("namespace", STRING), ("versionIdentifier", STRING)),
    ),
    EntityDef(
        name="DataField",
        supertype="Referenceable",
        properties=_props(
            *_DESCRIBED,
            ("dataType", STRING),
            ("isNullable", BOOL),
            ("minimumLength", INT),
            ("length", INT),
        ),
    ),
    EntityDef(
        name="Collection",
        supertype="Referenceable",
        properties=_props(("name", STRING), ("description", STRING), ("collectionType", STRING)),
        name_properties=["qualifiedName", "name"],
    ),
    EntityDef(
        name="Comment",
        supertype="Referenceable",
        properties=_props(("text", STRING), ("commentType", STRING)),
        search_properties=["text"],
    ),
]

_RELATIONSHIP_DESCRIPTION = _props(
    ("description", STRING),
    ("expression", STRING),
    ("steward", STRING),
    ("source", STRING),
)

_FIELD_POSITION = _props(
    ("dataFieldPosition", INT),
    ("minCardinality", INT),
    ("maxCardinality", INT),
)

RELATIONSHIP_DEFS = [
    RelationshipDef(name="TermAnchor", end1_type="Glossary", end2_type="GlossaryTerm"),
    RelationshipDef(name="CategoryAnchor", end1_type="Glossary", end2_type="GlossaryCategory"),
    RelationshipDef(
        name="CategoryHierarchyLink",
        end1_type="GlossaryCategory",
        end2_type="GlossaryCategory",
    ),
    RelationshipDef(
        name="TermCategorization",
        end1_type="GlossaryCategory",
        end2_type="GlossaryTerm",
        properties=_props(("description", STRING)),
    ),
    RelationshipDef(
        name="Synonym",
        end1_type="GlossaryTerm",
        end2_type="GlossaryTerm",
        properties=_RELATIONSHIP_DESCRIPTION,
    ),
    RelationshipDef(
        name="RelatedTerm",
        end1_type="GlossaryTerm",
        end2_type="GlossaryTerm",
        properties=_RELATIONSHIP_DESCRIPTION,
    ),
    RelationshipDef(
        name="SemanticAssignment",
        end1_type="Referenceable",
        end2_type="GlossaryTerm",
        properties=_RELATIONSHIP_DESCRIPTION,
    ),
    RelationshipDef(name="ConnectionEndpoint", end1_type="Endpoint", end2_type="Connection"),
    RelationshipDef(
        name="ConnectionConnectorType", end1_type="Connection", end2_type="ConnectorType"
    ),
    RelationshipDef(
        name="ConnectionToAsset",
        end1_type="Connection",
        end2_type="Asset",
        properties=_props(("assetSummary", STRING)),
    ),
    RelationshipDef(name="AssetLocation", end1_type="Asset", end2_type="Location"),
    RelationshipDef(name="NestedLocation", end1_type="Location", end2_type="Location"),
    RelationshipDef(
        name="AdjacentLocation",
        end1_type="Location",
        end2_type="Location",
        properties=_props(("description", STRING)),
    ),
    RelationshipDef(name="ActionAssignment", end1_type="PersonRole", end2_type="ToDo"),
    RelationshipDef(name="ActionSponsor", end1_type="Referenceable", end2_type="ToDo"),
    RelationshipDef(
        name="SolutionComposition",
        end1_type="SolutionComponent",
        end2_type="SolutionComponent",
        properties=_props(("role", STRING), ("description", STRING)),
    ),
    RelationshipDef(
        name="InformationSupplyChainComposition",
        end1_type="InformationSupplyChain",
        end2_type="InformationSupplyChainSegment",
    ),
    RelationshipDef(
        name="InformationSupplyChainLink",
        end1_type="InformationSupplyChainSegment",
        end2_type="InformationSupplyChainSegment",
        properties=_props(("label", STRING), ("description", STRING)),
    ),
    RelationshipDef(
        name="ImplementedBy",
        end1_type="Referenceable",
        end2_type="Referenceable",
        properties=_props(("designStep", STRING), ("role", STRING), ("description", STRING)),
    ),
    RelationshipDef(
        name="MemberDataField",
        end1_type="DataStructure",
        end2_type="DataField",
        properties=_FIELD_POSITION,
    ),
    RelationshipDef(
        name="NestedDataField",
        end1_type="DataField",
        end2_type="DataField",
        properties=_FIELD_POSITION,
    ),
    RelationshipDef(
        name="CollectionMembership",
        end1_type="Collection",
        end2_type="Referenceable",
        properties=_props(("membershipRationale", STRING)),
    ),
    RelationshipDef(name="AttachedComment", end1_type="Referenceable", end2_type="Comment"),
    RelationshipDef(
        name="SourcedFrom",
        end1_type="Referenceable",
        end2_type="Referenceable",
        properties=_props(("sourceVersionNumber", INT)),
    ),
]

CLASSIFICATION_DEFS = [
    ClassificationDef(
        name="Template",
        valid_entity_types=["Referenceable"],
        properties=_props(("name", STRING), ("description", STRING), ("versionIdentifier", STRING)),
    ),
    ClassificationDef(name="TemplateSubstitute", valid_entity_types=["Referenceable"]),
    ClassificationDef(
        name="Confidentiality",
        valid_entity_types=["Referenceable"],
        properties=_props(("levelIdentifier", INT), ("notes", STRING), ("steward", STRING)),
    ),
    ClassificationDef(
        name="Criticality",
        valid_entity_types=["Referenceable"],
        properties=_props(("levelIdentifier", INT), ("notes", STRING)),
    ),
    ClassificationDef(
        name="Ownership",
        valid_entity_types=["Referenceable"],
        properties=_props(("owner", STRING), ("ownerTypeName", STRING)),
    ),
    ClassificationDef(
        name="SubjectArea",
        valid_entity_types=["Referenceable"],
        properties=_props(("subjectAreaName", STRING)),
    ),
    ClassificationDef(
        name="Taxonomy",
        valid_entity_types=["Glossary"],
        properties=_props(("organizingPrinciple", STRING)),
    ),
    ClassificationDef(
        name="CanonicalVocabulary",
        valid_entity_types=["Glossary"],
        properties=_props(("scope", STRING)),
    ),
    ClassificationDef(name="SpineObject", valid_entity_types=["GlossaryTerm"]),
    ClassificationDef(
        name="PrimaryKey",
        valid_entity_types=["DataField"],
        properties=_props(("name", STRING), ("keyPattern", STRING)),
    ),
]


def default_catalogue() -> TypeCatalogue:
    return TypeCatalogue(
        entity_defs=ENTITY_DEFS,
        relationship_defs=RELATIONSHIP_DEFS,
        classification_defs=CLASSIFICATION_DEFS,
    )


def default_type_registry() -> TypeRegistry:
    """Return a fresh registry loaded with the built-in catalogue."""
    return TypeRegistry(default_catalogue())

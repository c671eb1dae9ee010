"""JSON schema for chapter documents.

Defines the structure every chapter file must follow before it is turned
into ChapterData. Per-op effect arguments are deliberately left open here:
they are interpreted leniently by the loader.
"""

CONDITION_SCHEMA = {
    "type": "object",
    "required": ["var", "op", "value"],
    "properties": {
        "var": {"type": "string", "minLength": 1},
        "op": {"type": "string"},
        "value": {},
    },
}

EFFECT_SCHEMA = {
    "type": "object",
    "required": ["op"],
    "properties": {
        "op": {"type": "string", "minLength": 1},
        "args": {"type": "object"},
        "when": {"type": "array", "items": {"$ref": "#/definitions/condition"}},
    },
}

CHOICE_SCHEMA = {
    "type": "object",
    "required": ["id", "text", "effects"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "text": {"type": "string"},
        "cost": {"type": "number", "minimum": 0},
        "costType": {"type": "string", "enum": ["diamonds", "tickets"]},
        "effects": {"type": "array", "items": {"$ref": "#/definitions/effect"}},
    },
}

LOCATOR_MAP_SCHEMA = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}

CHAPTER_SCHEMA = {
    "type": "object",
    "required": ["startNodeId", "nodes", "assetManifest"],
    "definitions": {
        "condition": CONDITION_SCHEMA,
        "effect": EFFECT_SCHEMA,
        "choice": CHOICE_SCHEMA,
    },
    "properties": {
        "startNodeId": {"type": "string", "minLength": 1},
        "nodes": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "onEnter": {"type": "array", "items": {"$ref": "#/definitions/effect"}},
                    "choices": {"type": "array", "items": {"$ref": "#/definitions/choice"}},
                },
            },
        },
        "assetManifest": {
            "type": "object",
            "properties": {
                "images": LOCATOR_MAP_SCHEMA,
                "characters": {
                    "type": "object",
                    "additionalProperties": {
                        "type": "object",
                        "additionalProperties": LOCATOR_MAP_SCHEMA,
                    },
                },
                "audio": LOCATOR_MAP_SCHEMA,
            },
        },
        "characterCustomization": {
            "type": "object",
            "additionalProperties": {"type": "object", "additionalProperties": {"type": "string"}},
        },
    },
}

PROGRESS_SCHEMA = {
    "type": "object",
    "properties": {
        "storyId": {"type": "string"},
        "chapterId": {"type": "string"},
        "resumeNodeId": {"type": "string"},
        "variables": {"type": "object"},
        "customization": {
            "type": "object",
            "additionalProperties": {"type": "object", "additionalProperties": {"type": "string"}},
        },
    },
}

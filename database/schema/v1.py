"""Schema v1 - Pixel map mirror.

Creates the event log used as the indexing watermark, the current state of the
100x100 grid, ownership and content history, and user names.
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'events',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'block_number', 'type': 'INT8', 'nullable': False},
                {'name': 'transaction_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'log_index', 'type': 'INT4', 'nullable': False},
                {'name': 'event_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'args', 'type': 'JSONB'},
                {'name': 'timestamp', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'unique': [
                ['transaction_hash', 'log_index']
            ],
            'indexes': [
                {'name': 'idx_events_block_number', 'columns': ['block_number']},
                {'name': 'idx_events_event_type', 'columns': ['event_type']}
            ]
        },
        {
            'name': 'pixel_blocks',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'x', 'type': 'INT4', 'nullable': False},
                {'name': 'y', 'type': 'INT4', 'nullable': False},
                {'name': 'uri', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'current_owner', 'type': 'TEXT', 'nullable': False},
                {'name': 'timestamp', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'unique': [
                ['x', 'y']
            ],
            'checks': [
                'x >= 0 AND x <= 99',
                'y >= 0 AND y <= 99'
            ],
            'indexes': [
                {'name': 'idx_pixel_blocks_owner', 'columns': ['current_owner']}
            ]
        },
        {
            'name': 'pixel_block_owners',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'x', 'type': 'INT4', 'nullable': False},
                {'name': 'y', 'type': 'INT4', 'nullable': False},
                {'name': 'owner', 'type': 'TEXT', 'nullable': False},
                {'name': 'timestamp', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'transaction_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'block_number', 'type': 'INT8', 'nullable': False}
            ],
            'foreign_keys': [
                {'columns': ['x', 'y'], 'references': 'pixel_blocks(x, y)'}
            ],
            'indexes': [
                {'name': 'idx_pixel_block_owners_xy', 'columns': ['x', 'y']},
                {'name': 'idx_pixel_block_owners_owner', 'columns': ['owner']}
            ]
        },
        {
            'name': 'pixel_block_uri_history',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'x', 'type': 'INT4', 'nullable': False},
                {'name': 'y', 'type': 'INT4', 'nullable': False},
                {'name': 'uri', 'type': 'TEXT', 'nullable': False},
                {'name': 'owner', 'type': 'TEXT', 'nullable': False},
                {'name': 'timestamp', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'transaction_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'block_number', 'type': 'INT8', 'nullable': False}
            ],
            'foreign_keys': [
                {'columns': ['x', 'y'], 'references': 'pixel_blocks(x, y)'}
            ],
            'indexes': [
                {'name': 'idx_pixel_block_uri_history_xy', 'columns': ['x', 'y']}
            ]
        },
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'address', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'user_name', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'user_name_history',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'user_address', 'type': 'TEXT', 'nullable': False},
                {'name': 'user_name', 'type': 'TEXT'},
                {'name': 'timestamp', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'transaction_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'block_number', 'type': 'INT8', 'nullable': False}
            ],
            'indexes': [
                {'name': 'idx_user_name_history_address', 'columns': ['user_address']}
            ]
        }
    ],
    'triggers': [
        {
            'name': 'pixel_blocks_updated_at_trigger',
            'function_name': 'set_updated_at',
            'table': 'pixel_blocks',
            'timing': 'BEFORE',
            'events': ['UPDATE'],
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        },
        {
            'name': 'users_updated_at_trigger',
            'function_name': 'set_updated_at',
            'table': 'users',
            'timing': 'BEFORE',
            'events': ['UPDATE'],
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        }
    ],
    'migrations': []
}

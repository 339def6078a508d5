from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# PostgreSQL에서는 JSONB, 그 외(SQLite 테스트 등)에서는 일반 JSON
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

# 모델 import는 canvas_app.db.models 에서 수행
# 순환 import 방지를 위해 여기서는 import하지 않음

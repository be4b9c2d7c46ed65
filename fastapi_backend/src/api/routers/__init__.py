"""One APIRouter per resource; mounted by src.api.main."""

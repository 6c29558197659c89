from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import get_curriculum_repo, get_program_parser
from app.api.models import ParseAccepted, ProgramCreateRequest, ProgramResponse
from app.core.security import get_current_active_user
from app.schema.sql import User
from app.services.program_parsing import ProgramParser
from app.services.programs import NewProgram, create_program
from app.storage.curriculum_repo import CurriculumRepository

router = APIRouter()


@router.post("", response_model=ProgramResponse, status_code=status.HTTP_201_CREATED)
async def create_program_route(
  request: ProgramCreateRequest,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  curriculum: CurriculumRepository = Depends(get_curriculum_repo),  # noqa: B008
) -> ProgramResponse:
  """Register a program from pasted text or an uploaded document; analyse it with /parse."""
  new_program = NewProgram(
    title=request.title,
    school_year=request.school_year,
    class_name=request.class_name,
    discipline_id=request.discipline_id,
    document_id=request.document_id,
    raw_content=request.raw_content,
  )
  program = await create_program(current_user.id, new_program, curriculum=curriculum)
  return ProgramResponse.from_record(program)


@router.post("/{program_id}/parse", response_model=ParseAccepted, status_code=status.HTTP_202_ACCEPTED)
async def parse_program(
  program_id: str,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  parser: ProgramParser = Depends(get_program_parser),  # noqa: B008
) -> ParseAccepted:
  """Extract modules and topics from the program text in the background."""
  await parser.start_parsing(program_id, current_user.id)
  return ParseAccepted(program_id=program_id)

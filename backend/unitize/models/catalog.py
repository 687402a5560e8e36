from pydantic import BaseModel


class Question(BaseModel):
    id: str
    question: str
    options: list[str]
    answer: int  # index into options
    explanation: str = ""


class Topic(BaseModel):
    id: str
    name: str
    questions: list[Question] = []


class Unit(BaseModel):
    id: str
    name: str
    topics: list[Topic] = []


class Course(BaseModel):
    id: str
    name: str
    description: str = ""
    units: list[Unit] = []


class CourseSummary(BaseModel):
    id: str
    name: str
    description: str
    unit_count: int


class CourseList(BaseModel):
    items: list[CourseSummary]
    total: int


class CatalogDocument(BaseModel):
    """Shape of the JSON seed file."""

    ap_courses: list[Course]


class QuestionHit(Question):
    """A question together with its place in the catalog."""

    course_id: str
    unit_id: str
    topic_id: str
    item_id: str  # schedulable course/unit/topic/question id


class QuestionHitList(BaseModel):
    items: list[QuestionHit]
    total: int

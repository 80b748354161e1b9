"""Chinese prompt templates for question generation and answer evaluation."""

TEACHER_QUALIFICATION = "teacher-qualification"

DIFFICULTY_LABELS = {
    "easy": "简单",
    "medium": "中等",
    "hard": "困难",
}

SUBJECT_NAMES = {
    "chinese": "语文",
    "math": "数学",
    "english": "英语",
    "physics": "物理",
    "chemistry": "化学",
    "biology": "生物",
    "history": "历史",
    "geography": "地理",
    "politics": "政治",
    "music": "音乐",
    "art": "美术",
    "pe": "体育",
    "primary": "小学教育",
    "kindergarten": "幼儿教育",
}

QUESTION_CATEGORIES = (
    "1. 自我认知类：考察与教师岗位的匹配度，包括职业动机、优势与不足、职业规划等；",
    "2. 人际沟通类：涉及与家长、同事、学生等关系的处理；",
    "3. 组织管理类：侧重活动策划与执行，如班会、春游、家长会等场景的组织协调；",
    "4. 应急应变类：针对突发事件的处理能力，例如学生受伤、课堂突发状况等；",
    "5. 综合分析类：分析教育现象、政策或名言；",
    "6. 教育教学类：解决教学中的实际问题，如学生偏科、作业管理、课堂纪律等；",
    "7. 时事政治类：结合教育相关的政策或会议精神，考察对教育方针的理解",
)

QUESTION_COUNT = 5


def interview_label(interview_type: str) -> str:
    return "教师资格证面试" if interview_type == TEACHER_QUALIFICATION else "教师编制招聘面试"


def difficulty_label(difficulty: str) -> str:
    # Anything unrecognised reads as the hardest tier.
    return DIFFICULTY_LABELS.get(difficulty, "困难")


def subject_name(subject: str) -> str:
    return SUBJECT_NAMES.get(subject, subject)


def build_question_prompt(interview_type: str,
                          subject: str,
                          difficulty: str = "medium",
                          include_hot_topics: bool = False) -> str:
    prompt = (
        f"请生成{QUESTION_COUNT}个{difficulty_label(difficulty)}难度的"
        f"{interview_label(interview_type)}{subject_name(subject)}学科的结构化面试问题"
    )
    prompt += "，请确保生成的问题涵盖以下七大类结构化面试题型：\n"
    prompt += "\n".join(QUESTION_CATEGORIES)
    if include_hot_topics:
        prompt += "，并请包含最新的教育热点话题"
    prompt += (
        "。对于每个问题，请同时提供一个参考答案。返回格式为JSON数组，"
        "每个元素包含question、reference和type字段，"
        "其中type表示问题类型（1-7对应上述七种类型）。"
    )
    return prompt


def build_evaluation_prompt(question: str, user_answer: str, interview_type: str) -> str:
    exam = "教师资格证" if interview_type == TEACHER_QUALIFICATION else "教师编制招聘"
    return (
        f"你是一位经验丰富的教师面试考官，请对以下{exam}面试中的回答进行评价。\n\n"
        f"面试问题：{question}\n\n"
        f"考生回答：{user_answer}\n\n"
        "请从专业性、逻辑性、表达能力、理论结合实践等方面进行评价，"
        "给出1-100的分数，并提供详细的评价意见。\n\n"
        "请严格按照以下JSON格式返回评价结果，不要包含任何其他文本：\n"
        '{\n  "score": 分数（1-100的整数）,\n  "evaluation": "详细的评价意见"\n}'
    )

"""UI strings for the instructor console and the public calendar preview."""

from __future__ import annotations

_STRINGS: dict[str, dict[str, str]] = {
    "en": {
        "login_title": "Sign in",
        "register_title": "Create the instructor account",
        "username": "Username",
        "password": "Password",
        "login_button": "Sign in",
        "register_button": "Create account",
        "logout_button": "Sign out",
        "login_failed": "Invalid username or password",
        "semester": "Semester",
        "new_semester": "New semester name",
        "add_semester": "Add semester",
        "course": "Course",
        "new_course_code": "Course code",
        "new_course_title": "Course title",
        "add_course": "Add course",
        "no_course": "Create a semester and a course to get started.",
        "tab_log": "Log",
        "tab_problems": "Problems",
        "tab_exams": "Exams",
        "tab_settings": "Publishing",
        "tab_preview": "Public preview",
        "kind": "Kind",
        "title": "Title",
        "description": "Description",
        "link": "Link",
        "date": "Date",
        "no_date": "No date",
        "add_log_item": "Add log item",
        "delete": "Delete",
        "saved": "Saved.",
        "log_empty": "No log items yet.",
        "attach_to": "Attach to",
        "screenshot": "Screenshot",
        "notes": "Notes",
        "categories": "Categories (comma separated)",
        "solution_link": "Solution link",
        "incorrect": "Got it wrong",
        "add_problem": "Add problem",
        "only_incorrect": "Only incorrect",
        "exam_title": "Exam title",
        "exam_semester": "Exam semester",
        "add_exam": "Add exam",
        "published": "Published",
        "public_slug": "Public slug",
        "show_lecture_links": "Show lecture links",
        "save_settings": "Save settings",
        "translate_course": "Translate course content",
        "translated_count": "Translated {count} items.",
        "nothing_to_translate": "No content to translate.",
        "preview_lang": "Preview language",
        "week": "Week {number}",
        "unscheduled": "Unscheduled",
        "calendar_empty": "Nothing scheduled yet.",
    },
    "zh": {
        "login_title": "登录",
        "register_title": "创建教师账号",
        "username": "用户名",
        "password": "密码",
        "login_button": "登录",
        "register_button": "创建账号",
        "logout_button": "退出",
        "login_failed": "用户名或密码错误",
        "semester": "学期",
        "new_semester": "新学期名称",
        "add_semester": "添加学期",
        "course": "课程",
        "new_course_code": "课程代码",
        "new_course_title": "课程名称",
        "add_course": "添加课程",
        "no_course": "请先创建学期和课程。",
        "tab_log": "日志",
        "tab_problems": "题目",
        "tab_exams": "考试",
        "tab_settings": "发布",
        "tab_preview": "公开预览",
        "kind": "类型",
        "title": "标题",
        "description": "描述",
        "link": "链接",
        "date": "日期",
        "no_date": "无日期",
        "add_log_item": "添加日志",
        "delete": "删除",
        "saved": "已保存。",
        "log_empty": "暂无日志。",
        "attach_to": "关联到",
        "screenshot": "截图",
        "notes": "笔记",
        "categories": "分类（用逗号分隔）",
        "solution_link": "答案链接",
        "incorrect": "做错了",
        "add_problem": "添加题目",
        "only_incorrect": "只看错题",
        "exam_title": "考试名称",
        "exam_semester": "考试学期",
        "add_exam": "添加考试",
        "published": "公开",
        "public_slug": "公开链接名",
        "show_lecture_links": "显示讲座链接",
        "save_settings": "保存设置",
        "translate_course": "翻译课程内容",
        "translated_count": "已翻译 {count} 项。",
        "nothing_to_translate": "没有需要翻译的内容。",
        "preview_lang": "预览语言",
        "week": "第 {number} 周",
        "unscheduled": "未排期",
        "calendar_empty": "暂无安排。",
    },
}

KIND_LABELS_ZH = {
    "Lecture": "讲座",
    "Discussion": "讨论",
    "Lab": "实验",
    "Homework": "作业",
    "Quiz": "测验",
    "Midterm": "期中",
    "Final": "期末",
    "Project": "项目",
    "Other": "其他",
    "Exam": "考试",
}


def tr(lang: str, key: str, **kwargs: object) -> str:
    """Look up *key* for *lang*, falling back to English and then to the key itself."""
    table = _STRINGS.get(lang) or _STRINGS["en"]
    text = table.get(key) or _STRINGS["en"].get(key) or key
    return text.format(**kwargs) if kwargs else text


def kind_label(lang: str, kind: str) -> str:
    if lang == "zh":
        return KIND_LABELS_ZH.get(kind, kind)
    return kind

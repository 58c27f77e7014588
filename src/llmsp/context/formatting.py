"""Prompt text for every kind of message llmsp sends to the model."""

from llmsp.llm import Message
from llmsp.sourcegraph import EmbeddingResult

from .languages import determine_language, fence_tag

ACKNOWLEDGEMENT = "Ok."

PERSONA_REQUEST = """You are Cody, an AI-powered coding assistant developed by Sourcegraph. You live inside a Language Server Protocol implementation. You have access to my currently open files.

In your responses, obey the following rules:
- Be as brief and concise as possible without losing clarity.
- Make suggestions only if you are sure about your answer. Otherwise, don't make any suggestion at all.
- Only reference functions if you are sure they exist."""

PERSONA = """I am Cody, an AI-powered coding assistant developed by Sourcegraph. I operate inside a Language Server Protocol implementation. My task is to help programmers with programming tasks in all programming languages.
I have access to your currently open files in the editor.
I will generate suggestions as concisely and clearly as possible.
I only suggest something if I am certain about my answer."""


def format_preamble(repo_name: str = "") -> list[Message]:
    persona = PERSONA
    if repo_name:
        persona += (
            f"\nI have knowledge about the {repo_name} repository "
            "and can answer questions about it."
        )
    return [Message.human(PERSONA_REQUEST), Message.assistant(persona)]


def format_search_result(result: EmbeddingResult) -> list[Message]:
    return [
        Message.human(
            f"Use the following text from file `{result.file_name}`:\n{result.content}",
            file_name=result.file_name,
        ),
        Message.assistant(ACKNOWLEDGEMENT),
    ]


def format_current_file(file_name: str, contents: str) -> list[Message]:
    return [
        Message.human(
            f"Here are the contents of the file, `{file_name}`, "
            f"we are in right now:\n{contents}",
            file_name=file_name,
        ),
        Message.assistant(ACKNOWLEDGEMENT),
    ]


def format_language(file_name: str) -> list[Message]:
    return [
        Message.human(f"The programming language is {determine_language(file_name)}"),
        Message.assistant(ACKNOWLEDGEMENT),
    ]


def fenced(code: str, file_name: str) -> str:
    """Wrap ``code`` in a code fence tagged with the file's language."""
    return f"```{fence_tag(file_name)}\n{code}\n```"


def format_snippet_for_memory(path: str, file_name: str, snippet: str) -> str:
    return f'Here is a snippet from the file "{path}":\n' + fenced(snippet, file_name)


def format_suggestion_request(path: str, numbered_snippet: str) -> str:
    return (
        f"Suggest improvements to following lines of code in the file '{path}':\n"
        f"{numbered_snippet}\n\n"
        "Suggest improvements in the format:\n"
        "Line {number}: {suggestion}"
    )


def format_docstring_request(file_name: str, snippet: str) -> str:
    return (
        "Generate a doc string explaining the use of the following "
        f"{determine_language(file_name)} function:\n{snippet}\n\n"
        "Don't include the function in your output."
    )


def format_todo_request(file_name: str, snippet: str) -> str:
    return (
        f"The following {determine_language(file_name)} code contains TODO "
        "instructions. Produce code that will implement the TODO. "
        "Don't say anything else.\n"
        f"Here is the code snippet:\n{snippet}"
    )


def format_question_request(prefix: str, question: str) -> str:
    return (
        f"Answer this question. Prepend each line with `{prefix}` "
        f"since you are in a code editor.\n\n{question}"
    )


def format_completion_request(file_name: str, snippet: str) -> str:
    return (
        f"Suggest a {determine_language(file_name)} code snippet to complete "
        f"the following code. Continue from where I left off:\n{snippet}"
    )


def format_error_request(error: str) -> str:
    return f"Explain the following error: {error}"

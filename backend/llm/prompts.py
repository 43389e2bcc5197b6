# -*- coding: utf-8 -*-
from langchain_core.prompts import PromptTemplate

standalone_question_prompt = PromptTemplate.from_template("""Given the following chat history and a follow-up question, rephrase the follow-up question to be a complete, standalone question that can be understood without the context of the chat history.

Chat History:
---
{history}
---

Follow-up Question: "{question}"

Return ONLY the standalone question.
Standalone Question:""")

sql_generation_prompt = PromptTemplate.from_template("""You are an expert Microsoft SQL Server (T-SQL) query generator. Your task is to generate a single, valid T-SQL query based on the user's question and the provided database schema context.

Follow these rules strictly:
1. **CRITICAL:** You MUST prefix all table names with the '{schema_name}.' schema (e.g., '{schema_name}.employees'). This is mandatory.
2. **CRITICAL SYNTAX RULE:** The keyword order MUST BE 'SELECT DISTINCT TOP (N)'. NEVER write 'SELECT TOP (N) DISTINCT'.
3. **CASE SENSITIVITY:** Table and column names in the query must exactly match the case provided in the schema context.
4. ONLY respond with the SQL query. Do not include any explanations, comments, or markdown formatting like ```sql.
5. Use only the tables and columns defined in the provided schema context. Do not invent tables or columns.
6. To limit results, you MUST use the 'TOP (N)' syntax (e.g., TOP (20)). Do NOT use 'LIMIT'.
7. For safety, only generate SELECT queries.
8. **IMPOSSIBILITY CLAUSE:** If the user's question cannot be answered using the provided schema context, you MUST respond with the single keyword: {sentinel}

**Database Schema Context:**
{schema_context}

User question: "{question}"
""")

analysis_prompt = PromptTemplate.from_template("""You are a helpful data analyst. Your task is to provide a clear, natural language answer to the user's question based on the provided data.

Original Question: "{question}"
{coverage_note}
Query Results (in JSON format):
{data}

Please provide a concise and easy-to-understand summary of these results. If the results are empty, state that no data was found for the question.""")


def coverage_note(shown: int, total: int) -> str:
    if shown >= total:
        return f"The data below contains all {total} row(s) returned."
    return (
        f"NOTE: The data below is a partial preview of {shown} row(s) out of {total} total. "
        "Do not describe it as complete; qualify totals and rankings accordingly."
    )

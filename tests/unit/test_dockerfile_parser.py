import os
from larastack.PARSERS.dockerfile_parser import DockerfileParser

DEPLOY_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'deploy')

def test_parse_from_string():
    content = """
    FROM php:8.2-fpm
    WORKDIR /var/www
    COPY . .
    RUN docker-php-ext-install pdo pdo_pgsql \
        && echo "done"
    ENV APP_ENV=production APP_DEBUG=false
    CMD ["php-fpm"]
    """
    parser = DockerfileParser()
    ast = parser.parse_from_string(content)

    inst_names = [i.instruction for i in ast.instructions]
    assert inst_names == ["FROM", "WORKDIR", "COPY", "RUN", "ENV", "CMD"]

    cmd_inst = next(i for i in ast.instructions if i.instruction == "CMD")
    assert cmd_inst.arguments == ["php-fpm"]

    run_inst = next(i for i in ast.instructions if i.instruction == "RUN")
    assert "&& echo \"done\"" in run_inst.arguments[0]

    env_inst = next(i for i in ast.instructions if i.instruction == "ENV")
    assert env_inst.arguments == ["APP_ENV=production", "APP_DEBUG=false"]

def test_base_image_is_final_stage():
    ast = DockerfileParser().parse_from_string(
        "from node:20 AS assets\nRUN npm ci\nFROM --platform=linux/amd64 php:8.3-fpm-alpine\nEXPOSE 9000/tcp 9001\n"
    )
    assert ast.base_image == "php:8.3-fpm-alpine"
    assert ast.exposed_ports == [9000, 9001]

def test_shipped_dockerfile():
    ast = DockerfileParser().parse(os.path.join(DEPLOY_DIR, 'Dockerfile'))
    assert ast.base_image == "php:8.2-fpm"
    assert ast.exposed_ports == [9000]

def test_escape_directive_and_comments_inside_continuation():
    ast = DockerfileParser().parse_from_string(
        "# escape=`\nFROM mcr.microsoft.com/windows/servercore\nRUN echo one `\n# note\n    two\nEXPOSE 80\n"
    )
    assert [i.instruction for i in ast.instructions] == ["FROM", "RUN", "EXPOSE"]
    assert ast.instructions[1].arguments == ["echo one two"]
    assert ast.exposed_ports == [80]
